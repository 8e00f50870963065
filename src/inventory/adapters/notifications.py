"""
Adapter pour les alertes de stock.

Le handler décide qu'une alerte est nécessaire ; l'adapter la
rédige pour un Stock donné et l'achemine. Seul `send` dépend du
canal (email, SMS, etc.).
"""

from __future__ import annotations

import abc
import smtplib
from email.message import EmailMessage

from inventory.domain import model


class AbstractNotifications(abc.ABC):
    """Interface abstraite pour les alertes de stock."""

    def alert_low_stock(
        self, destination: str, stock: model.Stock, threshold: model.Quantity
    ) -> None:
        """Prévient que le disponible d'un Stock est passé sous le seuil."""
        unit = stock.unit_of_measure
        self.send(
            destination,
            subject=f"Stock bas : {stock.sku} @ {stock.location_id}",
            message=(
                f"Le disponible du SKU {stock.sku} à l'emplacement {stock.location_id} "
                f"est de {unit.format_quantity(stock.available_quantity)}, "
                f"sous le seuil de {unit.format_quantity(threshold)}.\n"
                f"Réservé : {unit.format_quantity(stock.reserved_quantity)}.\n"
                f"Stock : {stock.id}"
            ),
        )

    @abc.abstractmethod
    def send(self, destination: str, subject: str, message: str) -> None:
        raise NotImplementedError


class EmailNotifications(AbstractNotifications):
    """Envoie les alertes par email via SMTP."""

    def __init__(self, smtp_host: str, smtp_port: int, sender: str):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.sender = sender

    def send(self, destination: str, subject: str, message: str) -> None:
        email = EmailMessage()
        email["From"] = self.sender
        email["To"] = destination
        email["Subject"] = subject
        email.set_content(message)
        with smtplib.SMTP(self.smtp_host, self.smtp_port) as smtp:
            smtp.send_message(email)
