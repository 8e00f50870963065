"""
Tests de la politique de réservation.
"""

from inventory.domain import policy
from inventory.domain.model import Quantity, Stock, UnitOfMeasure


def créer_stock(available: int) -> Stock:
    stock = Stock.create("SKU-001", "LOC-A", UnitOfMeasure.PIECE)
    stock.available_quantity = Quantity.of(available)
    return stock


class TestCanReserve:
    def test_vrai_si_disponible_suffisant(self):
        assert policy.can_reserve(créer_stock(10), Quantity.of(10))

    def test_faux_si_disponible_insuffisant(self):
        assert not policy.can_reserve(créer_stock(10), Quantity.of(11))

    def test_faux_sans_stock_ou_sans_quantité(self):
        assert not policy.can_reserve(None, Quantity.of(1))
        assert not policy.can_reserve(créer_stock(10), None)

    def test_ne_modifie_pas_le_stock(self):
        stock = créer_stock(10)
        policy.can_reserve(stock, Quantity.of(5))
        assert stock.available_quantity == Quantity.of(10)
        assert stock.reserved_quantity.is_zero()


class TestReservableQuantity:
    def test_égale_au_disponible(self):
        assert policy.reservable_quantity(créer_stock(7)) == Quantity.of(7)

    def test_zéro_sans_stock(self):
        assert policy.reservable_quantity(None).is_zero()


class TestIsLowStock:
    def test_vrai_sous_le_seuil(self):
        assert policy.is_low_stock(créer_stock(9), Quantity.of(10))

    def test_faux_au_seuil(self):
        assert not policy.is_low_stock(créer_stock(10), Quantity.of(10))

    def test_faux_sans_stock_ou_sans_seuil(self):
        assert not policy.is_low_stock(None, Quantity.of(10))
        assert not policy.is_low_stock(créer_stock(1), None)
