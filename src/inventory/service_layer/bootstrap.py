"""
Bootstrap : assemblage de l'application (Composition Root).

Ce module construit le message bus avec toutes ses dépendances.
C'est ici que l'injection de dépendances est réalisée :
on assemble les composants concrets (ou les fakes pour les tests).

C'est le seul endroit de l'application qui connaît les
implémentations concrètes de chaque abstraction.
"""

from __future__ import annotations

from typing import Any

from inventory import config
from inventory.adapters import notifications, orm
from inventory.domain import commands, events, model
from inventory.service_layer import handlers, messagebus, unit_of_work


def bootstrap(
    start_orm: bool = True,
    uow: unit_of_work.AbstractUnitOfWork | None = None,
    notifications_adapter: notifications.AbstractNotifications | None = None,
    settings: config.Settings | None = None,
    **extra_dependencies: Any,
) -> messagebus.MessageBus:
    """
    Construit et retourne un MessageBus configuré.

    En production, utilise les implémentations concrètes.
    En test, on injecte des fakes via les paramètres.
    """
    if settings is None:
        settings = config.get_settings()

    if start_orm:
        orm.start_mappers()

    if uow is None:
        uow = unit_of_work.SqlAlchemyUnitOfWork()

    if notifications_adapter is None:
        notifications_adapter = notifications.EmailNotifications(
            settings.smtp_host, settings.smtp_port, settings.alert_sender
        )

    dependencies: dict[str, Any] = {
        "notifications": notifications_adapter,
        "alert_recipient": settings.alert_recipient,
        "low_stock_threshold": model.Quantity.of(settings.low_stock_threshold),
        **extra_dependencies,
    }

    return messagebus.MessageBus(
        uow=uow,
        event_handlers=EVENT_HANDLERS,
        command_handlers=COMMAND_HANDLERS,
        dependencies=dependencies,
        max_attempts=settings.command_max_attempts,
    )


# --- Routage des messages vers les handlers ---

EVENT_HANDLERS: dict[type[events.Event], list] = {
    events.StockReceived: [handlers.publish_stock_event],
    events.StockReserved: [
        handlers.publish_stock_event,
        handlers.alert_on_low_stock,
    ],
    events.ReservationReleased: [handlers.publish_stock_event],
    events.ReservationConfirmed: [handlers.publish_stock_event],
    events.StockAdjusted: [
        handlers.publish_stock_event,
        handlers.alert_on_low_stock,
    ],
    events.StockWithdrawn: [
        handlers.publish_stock_event,
        handlers.alert_on_low_stock,
    ],
    events.StockSold: [
        handlers.publish_stock_event,
        handlers.alert_on_low_stock,
    ],
}

COMMAND_HANDLERS: dict[type[commands.Command], Any] = {
    commands.ReceiveStock: handlers.receive_stock,
    commands.ReserveStock: handlers.reserve_stock,
    commands.ReleaseReservation: handlers.release_reservation,
    commands.ConfirmReservation: handlers.confirm_reservation,
    commands.AdjustStock: handlers.adjust_stock,
    commands.WithdrawStock: handlers.withdraw_stock,
    commands.QuickSale: handlers.quick_sale,
}
