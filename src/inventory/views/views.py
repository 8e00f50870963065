"""
Views (lecture) pour le pattern CQRS.

Les views sont des fonctions de lecture pure qui interrogent
directement la base de données, sans passer par le modèle de domaine.

C'est le côté Query de CQRS : on sépare les chemins d'écriture
(qui passent par le domaine et le message bus) des chemins de
lecture (qui interrogent directement la BDD pour la performance).
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import desc, func, select

from inventory.adapters import orm
from inventory.domain import model
from inventory.service_layer import unit_of_work

MAX_PAGE_SIZE = 100


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _decimal(value) -> str:
    # les mouvements sont signés : pas de Quantity ici
    return format(Decimal(value).quantize(Decimal(1).scaleb(-model.SCALE)), "f")


def _stock_row(row) -> dict:
    return {
        "id": row.id,
        "product_id": row.product_id,
        "sku": row.sku,
        "location_id": row.location_id,
        "available_quantity": _decimal(row.available_quantity),
        "reserved_quantity": _decimal(row.reserved_quantity),
        "unit_of_measure": row.unit_of_measure,
        "version": row.version,
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def stock(stock_id: str, uow: unit_of_work.SqlAlchemyUnitOfWork) -> dict | None:
    with uow:
        row = uow.session.execute(
            select(orm.stocks).where(orm.stocks.c.id == stock_id)
        ).first()
        return _stock_row(row) if row else None


def stocks(
    uow: unit_of_work.SqlAlchemyUnitOfWork,
    sku: str | None = None,
    location_id: str | None = None,
) -> list[dict]:
    """
    Liste les stocks, filtrés par SKU et/ou emplacement.

    Les filtres sont normalisés comme à l'écriture (SKU en majuscules).
    """
    statement = select(orm.stocks)
    if sku:
        statement = statement.where(orm.stocks.c.sku == sku.strip().upper())
    if location_id:
        statement = statement.where(orm.stocks.c.location_id == location_id.strip())
    statement = statement.order_by(orm.stocks.c.sku, orm.stocks.c.location_id)
    with uow:
        return [_stock_row(r) for r in uow.session.execute(statement)]


def stocks_page(uow: unit_of_work.SqlAlchemyUnitOfWork, page: int = 0, size: int = 20) -> dict:
    """Une page de stocks ; la taille est bornée à MAX_PAGE_SIZE."""
    page = max(page, 0)
    size = min(max(size, 1), MAX_PAGE_SIZE)
    with uow:
        total = uow.session.execute(select(func.count()).select_from(orm.stocks)).scalar_one()
        rows = uow.session.execute(
            select(orm.stocks)
            .order_by(orm.stocks.c.sku, orm.stocks.c.location_id)
            .limit(size)
            .offset(page * size)
        )
        return {
            "items": [_stock_row(r) for r in rows],
            "page": page,
            "size": size,
            "total": total,
        }


def movements(stock_id: str, uow: unit_of_work.SqlAlchemyUnitOfWork) -> list[dict]:
    """Historique des mouvements d'un stock, du plus récent au plus ancien."""
    table = orm.stock_movements
    with uow:
        rows = uow.session.execute(
            select(table)
            .where(table.c.stock_id == stock_id)
            .order_by(desc(table.c.performed_at))
        )
        return [
            {
                "id": r.id,
                "movement_type": r.movement_type,
                "quantity": _decimal(r.quantity),
                "reason": r.reason,
                "reference_id": r.reference_id,
                "performed_by": r.performed_by,
                "performed_at": _iso(r.performed_at),
            }
            for r in rows
        ]
