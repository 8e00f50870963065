"""
Commands du domaine.

Les commands représentent des intentions : quelque chose que
le système doit faire. Contrairement aux events (faits passés),
les commands sont des demandes qui peuvent échouer.

Les champs sont les saisies brutes (chaînes) ; les handlers
les convertissent en value objects.
"""

from dataclasses import dataclass
from typing import Optional


class Command:
    """Classe de base pour toutes les commands."""
    pass


@dataclass(frozen=True)
class ReceiveStock(Command):
    """Demande de réception de stock (crée le Stock s'il n'existe pas)."""

    sku: str
    location_id: str
    quantity: str
    unit_of_measure: str = "PIECE"
    reason: Optional[str] = None
    performed_by: Optional[str] = None
    product_id: Optional[str] = None


@dataclass(frozen=True)
class ReserveStock(Command):
    """Demande de réservation pour une commande."""

    sku: str
    location_id: str
    quantity: str
    order_id: str
    performed_by: str = "system"


@dataclass(frozen=True)
class ReleaseReservation(Command):
    """Demande de libération d'une réservation."""

    stock_id: str
    quantity: str
    order_id: str
    performed_by: str = "system"


@dataclass(frozen=True)
class ConfirmReservation(Command):
    """Demande de confirmation d'une réservation."""

    stock_id: str
    quantity: str
    order_id: str
    performed_by: str = "system"


@dataclass(frozen=True)
class AdjustStock(Command):
    """Demande d'ajustement manuel du disponible."""

    stock_id: str
    new_quantity: str
    reason: Optional[str] = None
    performed_by: Optional[str] = None


@dataclass(frozen=True)
class WithdrawStock(Command):
    """Demande de retrait interne."""

    stock_id: str
    quantity: str
    department: Optional[str] = None
    reason: Optional[str] = None
    performed_by: Optional[str] = None


@dataclass(frozen=True)
class QuickSale(Command):
    """Demande de vente directe (caisse)."""

    stock_id: str
    quantity: str
    order_id: str
    performed_by: Optional[str] = None
