"""
Pattern Repository.

Le repository fournit une abstraction sur la couche de persistance
du Stock, avec le contrat de concurrence optimiste :

- un Stock sans version est inséré et reçoit la version 0 ;
- un Stock versionné est mis à jour par
  UPDATE ... WHERE id = ? AND version = ?, qui incrémente la version.
  Si aucune ligne ne correspond, un autre écrivain est passé avant :
  ConcurrencyConflict.

L'unicité du couple (sku, emplacement) est garantie par la base ;
le perdant d'une course à l'insertion reçoit DuplicateKey.
"""

from __future__ import annotations

import abc
from datetime import datetime, timezone

from sqlalchemy import delete, desc, insert, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from inventory.adapters import orm
from inventory.domain import model

INITIAL_VERSION = 0

# SQLSTATE des échecs de sérialisation et des interblocages
SERIALIZATION_FAILURES = {"40001", "40P01"}


# --- Exceptions ---


class ConcurrencyConflict(Exception):
    """Levée quand la version détenue ne correspond plus à la version stockée."""

    def __init__(self, stock_id: str, held_version: int):
        super().__init__(
            f"Le stock {stock_id} a été modifié par un autre utilisateur "
            f"(version détenue : {held_version})"
        )
        self.stock_id = stock_id
        self.held_version = held_version


class DuplicateKey(Exception):
    """Levée quand un Stock existe déjà pour ce couple SKU/emplacement."""

    def __init__(self, sku: str, location_id: str):
        super().__init__(f"Un stock existe déjà pour le SKU {sku} à l'emplacement {location_id}")
        self.sku = sku
        self.location_id = location_id


class AbstractStockRepository(abc.ABC):
    """
    Interface abstraite du repository de Stock.

    Le pattern Template Method est utilisé : save() porte le contrat
    de version, puis délègue l'écriture aux méthodes abstraites
    préfixées _ que les sous-classes implémentent.
    """

    def save(self, stock: model.Stock) -> model.Stock:
        """Insère ou met à jour le Stock, et avance sa version."""
        if stock.version is None:
            self._insert(stock, INITIAL_VERSION)
            stock.version = INITIAL_VERSION
            return stock

        held_version = stock.version
        if self._update(stock, held_version) == 0:
            raise ConcurrencyConflict(stock.id, held_version)
        stock.version = held_version + 1
        return stock

    def find_by_id(self, stock_id: str) -> model.Stock | None:
        return self._find_by_id(stock_id)

    def find_by_sku_and_location(self, sku: str, location_id: str) -> model.Stock | None:
        return self._find_by_sku_and_location(sku, location_id)

    def find_by_sku(self, sku: str) -> list[model.Stock]:
        return self._find_by_sku(sku)

    def find_by_location(self, location_id: str) -> list[model.Stock]:
        return self._find_by_location(location_id)

    def list_all(self) -> list[model.Stock]:
        return self._list_all()

    def exists(self, sku: str, location_id: str) -> bool:
        return self._find_by_sku_and_location(sku, location_id) is not None

    def delete(self, stock_id: str) -> None:
        """Supprime le Stock et, en cascade, ses mouvements."""
        self._delete(stock_id)

    @abc.abstractmethod
    def _insert(self, stock: model.Stock, version: int) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _update(self, stock: model.Stock, expected_version: int) -> int:
        """Écrit le Stock si la version stockée vaut expected_version ; retourne le nombre de lignes."""
        raise NotImplementedError

    @abc.abstractmethod
    def _find_by_id(self, stock_id: str) -> model.Stock | None:
        raise NotImplementedError

    @abc.abstractmethod
    def _find_by_sku_and_location(self, sku: str, location_id: str) -> model.Stock | None:
        raise NotImplementedError

    @abc.abstractmethod
    def _find_by_sku(self, sku: str) -> list[model.Stock]:
        raise NotImplementedError

    @abc.abstractmethod
    def _find_by_location(self, location_id: str) -> list[model.Stock]:
        raise NotImplementedError

    @abc.abstractmethod
    def _list_all(self) -> list[model.Stock]:
        raise NotImplementedError

    @abc.abstractmethod
    def _delete(self, stock_id: str) -> None:
        raise NotImplementedError


class SqlAlchemyStockRepository(AbstractStockRepository):
    """Implémentation concrète avec des requêtes SQLAlchemy Core explicites."""

    def __init__(self, session: Session):
        self.session = session

    def _insert(self, stock: model.Stock, version: int) -> None:
        try:
            self.session.execute(
                insert(orm.stocks).values(
                    id=stock.id,
                    product_id=stock.product_id,
                    sku=stock.sku,
                    location_id=stock.location_id,
                    unit_of_measure=stock.unit_of_measure.value,
                    created_at=stock.created_at,
                    version=version,
                    **_balances(stock),
                )
            )
        except IntegrityError as e:
            raise DuplicateKey(stock.sku, stock.location_id) from e

    def _update(self, stock: model.Stock, expected_version: int) -> int:
        try:
            result = self.session.execute(
                update(orm.stocks)
                .where(orm.stocks.c.id == stock.id)
                .where(orm.stocks.c.version == expected_version)
                .values(version=expected_version + 1, **_balances(stock))
            )
        except OperationalError as e:
            if _sqlstate(e) in SERIALIZATION_FAILURES:
                raise ConcurrencyConflict(stock.id, expected_version) from e
            raise
        return result.rowcount

    def _find_by_id(self, stock_id: str) -> model.Stock | None:
        return self._first(select(orm.stocks).where(orm.stocks.c.id == stock_id))

    def _find_by_sku_and_location(self, sku: str, location_id: str) -> model.Stock | None:
        return self._first(
            select(orm.stocks)
            .where(orm.stocks.c.sku == sku)
            .where(orm.stocks.c.location_id == location_id)
        )

    def _find_by_sku(self, sku: str) -> list[model.Stock]:
        return self._all(
            select(orm.stocks)
            .where(orm.stocks.c.sku == sku)
            .order_by(orm.stocks.c.location_id)
        )

    def _find_by_location(self, location_id: str) -> list[model.Stock]:
        return self._all(
            select(orm.stocks)
            .where(orm.stocks.c.location_id == location_id)
            .order_by(orm.stocks.c.sku)
        )

    def _list_all(self) -> list[model.Stock]:
        return self._all(
            select(orm.stocks).order_by(orm.stocks.c.sku, orm.stocks.c.location_id)
        )

    def _delete(self, stock_id: str) -> None:
        # SQLite n'applique pas ON DELETE CASCADE sans PRAGMA : on supprime explicitement.
        self.session.execute(
            delete(orm.stock_movements).where(orm.stock_movements.c.stock_id == stock_id)
        )
        self.session.execute(delete(orm.stocks).where(orm.stocks.c.id == stock_id))

    def _first(self, statement) -> model.Stock | None:
        row = self.session.execute(statement).first()
        return _to_domain(row) if row else None

    def _all(self, statement) -> list[model.Stock]:
        return [_to_domain(row) for row in self.session.execute(statement)]


def _sqlstate(error: OperationalError) -> str | None:
    # psycopg2 expose pgcode, psycopg 3 sqlstate
    return getattr(error.orig, "pgcode", None) or getattr(error.orig, "sqlstate", None)


def _balances(stock: model.Stock) -> dict:
    return dict(
        available_quantity=stock.available_quantity.value,
        reserved_quantity=stock.reserved_quantity.value,
        updated_at=stock.updated_at,
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite rend des datetimes naïfs
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_domain(row) -> model.Stock:
    """Reconstitue l'agrégat depuis une ligne de la table stocks."""
    return model.Stock(
        id=row.id,
        product_id=row.product_id,
        sku=row.sku,
        location_id=row.location_id,
        unit_of_measure=model.UnitOfMeasure(row.unit_of_measure),
        available_quantity=model.Quantity(row.available_quantity),
        reserved_quantity=model.Quantity(row.reserved_quantity),
        version=row.version,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


# --- Journal des mouvements ---


class AbstractMovementLedger(abc.ABC):
    """
    Journal des mouvements, en ajout seul.

    Aucune méthode de modification ni de suppression : une ligne
    écrite ne change plus.
    """

    def add(self, movement: model.StockMovement) -> None:
        self._add(movement)

    def for_stock(self, stock_id: str) -> list[model.StockMovement]:
        """Mouvements d'un Stock, du plus récent au plus ancien."""
        return self._for_stock(stock_id)

    @abc.abstractmethod
    def _add(self, movement: model.StockMovement) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _for_stock(self, stock_id: str) -> list[model.StockMovement]:
        raise NotImplementedError


class SqlAlchemyMovementLedger(AbstractMovementLedger):
    """Implémentation concrète du journal avec la session SQLAlchemy (classical mapping)."""

    def __init__(self, session: Session):
        self.session = session

    def _add(self, movement: model.StockMovement) -> None:
        self.session.add(movement)

    def _for_stock(self, stock_id: str) -> list[model.StockMovement]:
        return (
            self.session.query(model.StockMovement)
            .filter_by(stock_id=stock_id)
            .order_by(desc(orm.stock_movements.c.performed_at))
            .all()
        )
