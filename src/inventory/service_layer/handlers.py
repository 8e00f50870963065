"""
Handlers pour les commands et events.

Les handlers sont les fonctions qui traitent les commands et events
transitant par le message bus.

- Command handlers : une opération sur un Stock, puis save et commit
  (peuvent échouer ; l'erreur remonte à l'appelant)
- Event handlers : réagissent à un fait passé, après le commit
  (ne doivent pas faire échouer la command)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from inventory.domain import commands, events, model, policy

if TYPE_CHECKING:
    from inventory.adapters.notifications import AbstractNotifications
    from inventory.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)


# --- Chargement ---


def _get_by_id(uow: AbstractUnitOfWork, stock_id: str) -> model.Stock:
    stock = uow.stocks.find_by_id(stock_id)
    if stock is None:
        logger.warning("Stock introuvable : %s", stock_id)
        raise model.StockNotFound(f"Stock introuvable : {stock_id}")
    return stock


def _get_by_sku_and_location(
    uow: AbstractUnitOfWork, sku: str, location_id: str
) -> model.Stock:
    stock = uow.stocks.find_by_sku_and_location(sku, location_id)
    if stock is None:
        logger.warning("Stock introuvable : SKU=%s, emplacement=%s", sku, location_id)
        raise model.StockNotFound(
            f"Stock introuvable pour le SKU {sku} à l'emplacement {location_id}"
        )
    return stock


# --- Command Handlers ---


def receive_stock(
    cmd: commands.ReceiveStock,
    uow: AbstractUnitOfWork,
) -> model.Stock:
    """
    Réceptionne du stock à un emplacement.

    Si aucun Stock n'existe pour ce couple SKU/emplacement, il est
    créé. Deux réceptions simultanées peuvent tenter la création :
    la perdante reçoit DuplicateKey et le bus la rejoue, ce qui la
    ramène sur le Stock désormais existant.
    """
    sku = model.normalize_sku(cmd.sku)
    location_id = model.normalize_location_id(cmd.location_id)
    quantity = model.Quantity.of(cmd.quantity)
    unit = model.UnitOfMeasure.parse(cmd.unit_of_measure)
    logger.info(
        "Réception de stock : SKU=%s, emplacement=%s, quantité=%s", sku, location_id, quantity
    )
    with uow:
        stock = uow.stocks.find_by_sku_and_location(sku, location_id)
        if stock is None:
            logger.debug("Création du stock pour SKU=%s à l'emplacement %s", sku, location_id)
            stock = model.Stock.create(sku, location_id, unit, product_id=cmd.product_id)
        uow.record(stock.receive_stock(quantity, cmd.reason, cmd.performed_by))
        uow.stocks.save(stock)
        uow.commit()
    logger.info(
        "Stock réceptionné : id=%s, disponible=%s", stock.id, stock.available_quantity
    )
    return stock


def reserve_stock(
    cmd: commands.ReserveStock,
    uow: AbstractUnitOfWork,
) -> model.Stock:
    """
    Réserve du stock pour une commande.

    La politique de réservation sert de pré-contrôle ; l'agrégat
    refait la vérification de son côté.
    """
    sku = model.normalize_sku(cmd.sku)
    location_id = model.normalize_location_id(cmd.location_id)
    quantity = model.Quantity.of(cmd.quantity)
    with uow:
        stock = _get_by_sku_and_location(uow, sku, location_id)
        if quantity.is_positive() and not policy.can_reserve(stock, quantity):
            logger.warning(
                "Stock insuffisant : demandé=%s, disponible=%s",
                quantity, stock.available_quantity,
            )
            raise model.InsufficientStock(
                f"Impossible de réserver {quantity}. Disponible : {stock.available_quantity}"
            )
        uow.record(stock.reserve(quantity, cmd.order_id, performed_by=cmd.performed_by))
        uow.stocks.save(stock)
        uow.commit()
    logger.info("Stock réservé : id=%s, réservé=%s", stock.id, stock.reserved_quantity)
    return stock


def release_reservation(
    cmd: commands.ReleaseReservation,
    uow: AbstractUnitOfWork,
) -> model.Stock:
    quantity = model.Quantity.of(cmd.quantity)
    with uow:
        stock = _get_by_id(uow, cmd.stock_id)
        uow.record(
            stock.release_reservation(quantity, cmd.order_id, performed_by=cmd.performed_by)
        )
        uow.stocks.save(stock)
        uow.commit()
    logger.info("Réservation libérée : id=%s, commande=%s", stock.id, cmd.order_id)
    return stock


def confirm_reservation(
    cmd: commands.ConfirmReservation,
    uow: AbstractUnitOfWork,
) -> model.Stock:
    quantity = model.Quantity.of(cmd.quantity)
    with uow:
        stock = _get_by_id(uow, cmd.stock_id)
        uow.record(
            stock.confirm_reservation(quantity, cmd.order_id, performed_by=cmd.performed_by)
        )
        uow.stocks.save(stock)
        uow.commit()
    logger.info("Réservation confirmée : id=%s, commande=%s", stock.id, cmd.order_id)
    return stock


def adjust_stock(
    cmd: commands.AdjustStock,
    uow: AbstractUnitOfWork,
) -> model.Stock:
    """Ajuste le disponible à une valeur absolue (inventaire physique)."""
    new_quantity = model.Quantity.of(cmd.new_quantity)
    logger.info(
        "Ajustement du stock : id=%s, nouvelle quantité=%s, motif=%s",
        cmd.stock_id, new_quantity, cmd.reason,
    )
    with uow:
        stock = _get_by_id(uow, cmd.stock_id)
        logger.debug(
            "Stock actuel : disponible=%s, réservé=%s",
            stock.available_quantity, stock.reserved_quantity,
        )
        uow.record(stock.adjust_stock(new_quantity, cmd.reason, cmd.performed_by))
        uow.stocks.save(stock)
        uow.commit()
    logger.info("Stock ajusté : id=%s, disponible=%s", stock.id, stock.available_quantity)
    return stock


def withdraw_stock(
    cmd: commands.WithdrawStock,
    uow: AbstractUnitOfWork,
) -> model.Stock:
    quantity = model.Quantity.of(cmd.quantity)
    with uow:
        stock = _get_by_id(uow, cmd.stock_id)
        uow.record(
            stock.withdraw(quantity, cmd.department, cmd.reason, cmd.performed_by)
        )
        uow.stocks.save(stock)
        uow.commit()
    logger.info(
        "Stock retiré : id=%s, service=%s, disponible=%s",
        stock.id, cmd.department, stock.available_quantity,
    )
    return stock


def quick_sale(
    cmd: commands.QuickSale,
    uow: AbstractUnitOfWork,
) -> model.Stock:
    """Vente comptoir : déduit directement le disponible."""
    quantity = model.Quantity.of(cmd.quantity)
    with uow:
        stock = _get_by_id(uow, cmd.stock_id)
        uow.record(stock.quick_sale(quantity, cmd.order_id, cmd.performed_by))
        uow.stocks.save(stock)
        uow.commit()
    logger.info("Vente enregistrée : id=%s, ticket=%s", stock.id, cmd.order_id)
    return stock


# --- Event Handlers ---


def publish_stock_event(event: events.Event) -> None:
    """
    Publie un événement de stock vers l'extérieur.

    Dans un système complet, cela publierait vers Redis, Kafka, etc.
    """
    logger.info(
        "Événement publié : %s (stock %s, SKU %s)",
        type(event).__name__, event.stock_id, event.sku,
    )


def alert_on_low_stock(
    event: events.Event,
    uow: AbstractUnitOfWork,
    notifications: AbstractNotifications,
    alert_recipient: str,
    low_stock_threshold: model.Quantity,
) -> None:
    """Envoie une alerte quand le disponible passe sous le seuil minimal."""
    with uow:
        stock = uow.stocks.find_by_id(event.stock_id)
    if not policy.is_low_stock(stock, low_stock_threshold):
        return
    logger.warning(
        "Stock bas pour %s@%s : %s", stock.sku, stock.location_id, stock.available_quantity
    )
    notifications.alert_low_stock(alert_recipient, stock, low_stock_threshold)
