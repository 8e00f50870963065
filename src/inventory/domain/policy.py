"""
Politique de réservation (service du domaine).

Fonctions pures et sans état, utilisées par les handlers pour
court-circuiter une opération vouée à l'échec. L'agrégat refait
la même vérification : un résultat True ne dispense pas de gérer
InsufficientStock.
"""

from __future__ import annotations

from typing import Optional

from inventory.domain.model import Quantity, Stock


def can_reserve(stock: Optional[Stock], requested: Optional[Quantity]) -> bool:
    if stock is None or requested is None:
        return False
    return stock.available_quantity.is_greater_than_or_equal(requested)


def reservable_quantity(stock: Optional[Stock]) -> Quantity:
    """Quantité maximale réservable (pour un traitement partiel d'une commande)."""
    if stock is None:
        return Quantity.zero()
    return stock.available_quantity


def is_low_stock(stock: Optional[Stock], threshold: Optional[Quantity]) -> bool:
    """Vrai quand le disponible est passé sous le seuil minimal."""
    if stock is None or threshold is None:
        return False
    return threshold.is_greater_than(stock.available_quantity)
