"""
Tests d'intégration du Repository avec SQLite.

Ces tests vérifient le contrat de persistance :
- Sauvegarder et recharger un Stock (quantités décimales, dates UTC)
- La version avance à chaque écriture, et une version périmée est refusée
- L'unicité du couple SKU/emplacement
- Le journal des mouvements et la suppression en cascade
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from inventory.adapters import repository
from inventory.service_layer import unit_of_work
from inventory.domain.model import Quantity, Stock, StockMovement, UnitOfMeasure


def créer_stock(sku="SKU-001", location_id="LOC-A", available="10") -> Stock:
    stock = Stock.create(sku, location_id, UnitOfMeasure.PIECE)
    stock.receive_stock(Quantity.of(available), None, None)
    return stock


def mouvement(stock_id: str, quantité: str, performed_at: datetime) -> StockMovement:
    return StockMovement(
        id=f"mvt-{quantité}",
        stock_id=stock_id,
        movement_type="RECEIPT",
        quantity=Decimal(quantité),
        reason=None,
        reference_id=None,
        performed_by="alice",
        performed_at=performed_at,
    )


class TestSqlAlchemyStockRepository:
    def test_sauvegarder_et_recharger_un_stock(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyStockRepository(session)
        stock = créer_stock(available="10.1234")
        stock.product_id = "PROD-42"

        repo.save(stock)
        session.commit()

        rechargé = repository.SqlAlchemyStockRepository(sqlite_session_factory()).find_by_id(stock.id)
        assert rechargé == stock
        assert rechargé.sku == "SKU-001"
        assert rechargé.product_id == "PROD-42"
        assert rechargé.available_quantity == Quantity.of("10.1234")
        assert rechargé.reserved_quantity.is_zero()
        assert rechargé.unit_of_measure is UnitOfMeasure.PIECE
        assert rechargé.version == 0
        assert rechargé.created_at.tzinfo is not None
        assert rechargé.updated_at == stock.updated_at

    def test_grandes_quantités_relues_à_l_identique(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyStockRepository(session)
        stock = créer_stock(available="12345678901234.5678")
        stock.reserve(Quantity.of("0.0001"), "ORD-1")
        repo.save(stock)
        session.commit()

        rechargé = repository.SqlAlchemyStockRepository(sqlite_session_factory()).find_by_id(stock.id)

        assert rechargé.available_quantity.value == Decimal("12345678901234.5677")
        assert rechargé.reserved_quantity.value == Decimal("0.0001")

    def test_chaque_écriture_avance_la_version(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyStockRepository(session)
        stock = créer_stock()
        repo.save(stock)

        stock.reserve(Quantity.of(3), "ORD-1")
        repo.save(stock)
        stock.release_reservation(Quantity.of(3), "ORD-1")
        repo.save(stock)
        session.commit()

        assert stock.version == 2
        assert repo.find_by_id(stock.id).version == 2

    def test_version_périmée_refusée(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyStockRepository(session)
        stock = créer_stock()
        repo.save(stock)
        session.commit()

        stock.version = 5
        with pytest.raises(repository.ConcurrencyConflict) as exc_info:
            repo.save(stock)
        assert exc_info.value.held_version == 5
        assert stock.version == 5

    def test_mise_à_jour_d_un_stock_supprimé(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyStockRepository(session)
        stock = créer_stock()
        stock.version = 0
        with pytest.raises(repository.ConcurrencyConflict):
            repo.save(stock)

    def test_deux_écrivains_sur_la_même_version(self, file_session_factory):
        setup = file_session_factory()
        stock = créer_stock(available="10")
        repository.SqlAlchemyStockRepository(setup).save(stock)
        setup.commit()
        setup.close()

        session_a = file_session_factory()
        session_b = file_session_factory()
        repo_a = repository.SqlAlchemyStockRepository(session_a)
        repo_b = repository.SqlAlchemyStockRepository(session_b)
        copie_a = repo_a.find_by_id(stock.id)
        copie_b = repo_b.find_by_id(stock.id)

        copie_a.reserve(Quantity.of(10), "ORD-A")
        repo_a.save(copie_a)
        session_a.commit()

        copie_b.reserve(Quantity.of(10), "ORD-B")
        with pytest.raises(repository.ConcurrencyConflict):
            repo_b.save(copie_b)
        session_b.rollback()

        rechargé = repository.SqlAlchemyStockRepository(file_session_factory()).find_by_id(stock.id)
        assert rechargé.available_quantity.is_zero()
        assert rechargé.reserved_quantity == Quantity.of(10)
        assert rechargé.version == 1
        session_a.close()
        session_b.close()

    def test_couple_sku_emplacement_unique(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyStockRepository(session)
        repo.save(créer_stock())
        session.commit()

        with pytest.raises(repository.DuplicateKey):
            repo.save(créer_stock())
        session.rollback()

        assert len(repo.list_all()) == 1

    def test_recherches(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyStockRepository(session)
        repo.save(créer_stock("SKU-002", "LOC-B"))
        repo.save(créer_stock("SKU-001", "LOC-B"))
        repo.save(créer_stock("SKU-001", "LOC-A"))
        session.commit()

        assert [s.location_id for s in repo.find_by_sku("SKU-001")] == ["LOC-A", "LOC-B"]
        assert [s.sku for s in repo.find_by_location("LOC-B")] == ["SKU-001", "SKU-002"]
        assert [(s.sku, s.location_id) for s in repo.list_all()] == [
            ("SKU-001", "LOC-A"),
            ("SKU-001", "LOC-B"),
            ("SKU-002", "LOC-B"),
        ]
        assert repo.exists("SKU-002", "LOC-B")
        assert not repo.exists("SKU-002", "LOC-A")
        assert repo.find_by_sku_and_location("SKU-002", "LOC-A") is None
        assert repo.find_by_id("inconnu") is None

    def test_suppression_en_cascade(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyStockRepository(session)
        ledger = repository.SqlAlchemyMovementLedger(session)
        stock = créer_stock()
        repo.save(stock)
        ledger.add(mouvement(stock.id, "10", datetime.now(timezone.utc)))
        session.commit()

        repo.delete(stock.id)
        session.commit()

        assert repo.find_by_id(stock.id) is None
        assert ledger.for_stock(stock.id) == []


class TestSqlAlchemyMovementLedger:
    def test_mouvements_du_plus_récent_au_plus_ancien(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyStockRepository(session)
        ledger = repository.SqlAlchemyMovementLedger(session)
        stock = créer_stock()
        repo.save(stock)
        maintenant = datetime.now(timezone.utc)
        ledger.add(mouvement(stock.id, "1", maintenant - timedelta(hours=2)))
        ledger.add(mouvement(stock.id, "3", maintenant))
        ledger.add(mouvement(stock.id, "2", maintenant - timedelta(hours=1)))
        session.commit()

        quantités = [m.quantity for m in ledger.for_stock(stock.id)]

        assert quantités == [Decimal("3"), Decimal("2"), Decimal("1")]

    def test_quantité_signée_conservée(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyStockRepository(session)
        ledger = repository.SqlAlchemyMovementLedger(session)
        stock = créer_stock()
        repo.save(stock)
        ledger.add(mouvement(stock.id, "-2.5", datetime.now(timezone.utc)))
        session.commit()

        [rechargé] = ledger.for_stock(stock.id)
        assert rechargé.quantity == Decimal("-2.5")

    def test_grande_quantité_signée_exacte(self, sqlite_session_factory):
        session = sqlite_session_factory()
        repo = repository.SqlAlchemyStockRepository(session)
        ledger = repository.SqlAlchemyMovementLedger(session)
        stock = créer_stock()
        repo.save(stock)
        ledger.add(mouvement(stock.id, "-98765432109876.5432", datetime.now(timezone.utc)))
        session.commit()
        session.expunge_all()

        [rechargé] = ledger.for_stock(stock.id)
        assert rechargé.quantity == Decimal("-98765432109876.5432")


class ServerError(Exception):
    def __init__(self, pgcode):
        super().__init__(f"SQLSTATE {pgcode}")
        self.pgcode = pgcode


class FailingUpdateSession:
    """Session dont chaque requête échoue comme un serveur SQL sous contention."""

    def __init__(self, pgcode):
        self.pgcode = pgcode

    def execute(self, statement):
        raise OperationalError("UPDATE stocks ...", {}, ServerError(self.pgcode))


class TestSerializationFailures:
    def test_échec_de_sérialisation_devient_un_conflit(self):
        repo = repository.SqlAlchemyStockRepository(FailingUpdateSession("40001"))
        stock = créer_stock()
        stock.version = 3

        with pytest.raises(repository.ConcurrencyConflict) as exc_info:
            repo.save(stock)

        assert exc_info.value.held_version == 3
        assert stock.version == 3

    def test_interblocage_devient_un_conflit(self):
        repo = repository.SqlAlchemyStockRepository(FailingUpdateSession("40P01"))
        stock = créer_stock()
        stock.version = 0
        with pytest.raises(repository.ConcurrencyConflict):
            repo.save(stock)

    def test_autres_erreurs_propagées(self):
        repo = repository.SqlAlchemyStockRepository(FailingUpdateSession("08006"))
        stock = créer_stock()
        stock.version = 0
        with pytest.raises(OperationalError):
            repo.save(stock)


class TestMakeEngine:
    def test_serveur_en_read_committed(self, monkeypatch):
        appels = []
        monkeypatch.setattr(
            unit_of_work, "create_engine", lambda uri, **kw: appels.append((uri, kw))
        )

        unit_of_work.make_engine("postgresql://inventory@db/inventory")

        assert appels == [
            ("postgresql://inventory@db/inventory", {"isolation_level": "READ COMMITTED"})
        ]

    def test_sqlite_garde_le_mode_du_pilote(self):
        engine = unit_of_work.make_engine("sqlite://")
        assert engine.dialect.name == "sqlite"
        engine.dispose()
