"""
Enregistreur des mouvements de stock.

Transforme chaque événement du domaine en une ligne du journal des
mouvements, avec une quantité signée : les entrées (réception,
libération) sont positives, les sorties (réservation, confirmation,
retrait, vente) négatives, et l'ajustement reprend la différence
portée par l'événement.

Le domaine ne connaît que « du stock a été reçu » ; le journal
est une projection construite à partir des événements, jamais
écrite directement par les handlers.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Callable, Iterable

from inventory.domain import events, model

if TYPE_CHECKING:
    from inventory.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)


def _movement(
    event: events.Event,
    movement_type: model.MovementType,
    quantity,
    reason,
    reference_id=None,
) -> model.StockMovement:
    return model.StockMovement(
        id=str(uuid.uuid4()),
        stock_id=event.stock_id,
        movement_type=movement_type.value,
        quantity=quantity,
        reason=reason,
        reference_id=reference_id,
        performed_by=event.performed_by,
        performed_at=event.occurred_on,
    )


def _received(event: events.StockReceived) -> model.StockMovement:
    return _movement(event, model.MovementType.RECEIPT, event.quantity.value, event.reason)


def _reserved(event: events.StockReserved) -> model.StockMovement:
    return _movement(
        event, model.MovementType.RESERVATION, -event.quantity.value,
        "Order Reservation", event.order_id,
    )


def _released(event: events.ReservationReleased) -> model.StockMovement:
    return _movement(
        event, model.MovementType.RELEASE, event.quantity.value,
        "Order Cancellation", event.order_id,
    )


def _confirmed(event: events.ReservationConfirmed) -> model.StockMovement:
    return _movement(
        event, model.MovementType.CONFIRMATION, -event.quantity.value,
        "Order Confirmation", event.order_id,
    )


def _adjusted(event: events.StockAdjusted) -> model.StockMovement:
    return _movement(event, model.MovementType.ADJUSTMENT, event.difference, event.reason)


def _withdrawn(event: events.StockWithdrawn) -> model.StockMovement:
    return _movement(
        event, model.MovementType.WITHDRAWAL, -event.quantity.value,
        event.reason, event.department,
    )


def _sold(event: events.StockSold) -> model.StockMovement:
    return _movement(
        event, model.MovementType.SALE, -event.quantity.value,
        "Quick Sale / POS", event.order_id,
    )


BUILDERS: dict[type[events.Event], Callable[..., model.StockMovement]] = {
    events.StockReceived: _received,
    events.StockReserved: _reserved,
    events.ReservationReleased: _released,
    events.ReservationConfirmed: _confirmed,
    events.StockAdjusted: _adjusted,
    events.StockWithdrawn: _withdrawn,
    events.StockSold: _sold,
}


def movement_for(event: events.Event) -> model.StockMovement:
    """Construit la ligne de journal correspondant à un événement."""
    try:
        builder = BUILDERS[type(event)]
    except KeyError:
        raise ValueError(f"Aucun mouvement pour l'event {type(event).__name__}") from None
    return builder(event)


def record_movements(pending: Iterable[events.Event], uow: AbstractUnitOfWork) -> None:
    """
    Écrit un mouvement par événement, dans la transaction du UoW.

    Chaque événement doit référencer un Stock existant.
    """
    for event in pending:
        if uow.stocks.find_by_id(event.stock_id) is None:
            raise model.StockNotFound(
                f"Stock introuvable pour l'enregistrement du mouvement : {event.stock_id}"
            )
        logger.debug("Enregistrement du mouvement pour %s", event)
        uow.movements.add(movement_for(event))
