"""
Events du domaine.

Les events représentent des faits qui se sont produits sur un Stock.
Ils sont immuables et nommés au passé (quelque chose s'est passé).
Chaque opération de l'agrégat retourne exactement un event ; ils ne
font pas partie de l'état persisté du Stock.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from inventory.domain.model import Quantity


def _new_event_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event:
    """Classe de base pour tous les events du domaine."""
    pass


@dataclass(frozen=True)
class StockReceived(Event):
    """Du stock a été réceptionné."""

    stock_id: str
    sku: str
    location_id: str
    quantity: Quantity
    reason: Optional[str] = None
    performed_by: Optional[str] = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_on: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class StockReserved(Event):
    """Du stock disponible a été réservé pour une commande."""

    stock_id: str
    sku: str
    location_id: str
    quantity: Quantity
    order_id: str
    performed_by: Optional[str] = "system"
    event_id: str = field(default_factory=_new_event_id)
    occurred_on: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ReservationReleased(Event):
    """Une réservation a été libérée (commande annulée)."""

    stock_id: str
    sku: str
    location_id: str
    quantity: Quantity
    order_id: str
    performed_by: Optional[str] = "system"
    event_id: str = field(default_factory=_new_event_id)
    occurred_on: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ReservationConfirmed(Event):
    """Une réservation a été confirmée : le stock a quitté l'inventaire."""

    stock_id: str
    sku: str
    location_id: str
    quantity: Quantity
    order_id: str
    performed_by: Optional[str] = "system"
    event_id: str = field(default_factory=_new_event_id)
    occurred_on: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class StockAdjusted(Event):
    """
    Le disponible a été ajusté manuellement.

    `difference` est signée (nouvelle valeur - ancienne valeur).
    """

    stock_id: str
    sku: str
    location_id: str
    difference: Decimal
    new_quantity: Quantity
    reason: Optional[str] = None
    performed_by: Optional[str] = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_on: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class StockWithdrawn(Event):
    """Du stock a été retiré pour un usage interne."""

    stock_id: str
    sku: str
    location_id: str
    quantity: Quantity
    department: Optional[str] = None
    reason: Optional[str] = None
    performed_by: Optional[str] = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_on: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class StockSold(Event):
    """Du stock a été vendu directement (caisse, vente comptoir)."""

    stock_id: str
    sku: str
    location_id: str
    quantity: Quantity
    order_id: str
    performed_by: Optional[str] = None
    event_id: str = field(default_factory=_new_event_id)
    occurred_on: datetime = field(default_factory=_utcnow)
