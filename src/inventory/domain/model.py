"""
Modèle de domaine pour la gestion de stock.

Ce module contient les value objects, l'agrégat Stock et les erreurs
métier. Un Stock représente la quantité physique d'un SKU à un
emplacement donné : toutes les modifications de quantité (réception,
réservation, libération, confirmation, ajustement, retrait, vente
directe) passent par cet agrégat, qui garantit qu'aucun solde ne
devient négatif.
"""

from __future__ import annotations

import decimal
import enum
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from inventory.domain import events


# --- Exceptions ---


class StockError(Exception):
    """Classe de base des erreurs métier du stock."""
    pass


class InvalidOperation(StockError):
    """Levée pour une quantité absente ou non positive, un SKU mal formé, etc."""
    pass


class NegativeResult(InvalidOperation):
    """Levée quand une quantité deviendrait négative."""
    pass


class InsufficientStock(StockError):
    """Levée quand le solde disponible (ou réservé) ne couvre pas la demande."""
    pass


class StockNotFound(StockError):
    """Levée quand aucun Stock ne correspond à l'identifiant ou au couple SKU/emplacement."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Value Objects ---


SCALE = 4
_QUANTUM = Decimal(1).scaleb(-SCALE)

QuantityInput = Union["Quantity", Decimal, int, str]


@dataclass(frozen=True, order=True)
class Quantity:
    """
    Value Object représentant une quantité de stock.

    La valeur est un Decimal normalisé à 4 décimales (arrondi HALF_UP),
    jamais négatif. Les flottants sont refusés : des cycles répétés de
    réception/retrait ne doivent pas dériver.

    frozen=True rend la quantité immuable : chaque opération
    arithmétique retourne une nouvelle instance.
    """

    value: Decimal

    def __post_init__(self) -> None:
        value = self.value
        if isinstance(value, str):
            try:
                value = Decimal(value.strip())
            except decimal.InvalidOperation:
                raise InvalidOperation(f"Quantité illisible : {value!r}") from None
        if isinstance(value, bool) or not isinstance(value, (Decimal, int)):
            raise InvalidOperation(
                f"Quantité invalide : {value!r} (Decimal, entier ou chaîne attendu)"
            )
        value = Decimal(value)
        if not value.is_finite():
            raise InvalidOperation(f"Quantité invalide : {value}")
        if value < 0:
            raise NegativeResult(f"Une quantité ne peut pas être négative : {value}")
        object.__setattr__(self, "value", value.quantize(_QUANTUM, rounding=ROUND_HALF_UP))

    @classmethod
    def of(cls, raw: QuantityInput) -> Quantity:
        """Construit une quantité depuis une saisie (chaîne décimale, entier ou Decimal)."""
        if isinstance(raw, Quantity):
            return raw
        if raw is None:
            raise InvalidOperation("La quantité est obligatoire")
        return cls(raw)

    @classmethod
    def zero(cls) -> Quantity:
        return cls(Decimal(0))

    def add(self, other: Quantity) -> Quantity:
        _require_quantity(other)
        return Quantity(self.value + other.value)

    def subtract(self, other: Quantity) -> Quantity:
        """Soustraction ; c'est la garde principale contre la sur-allocation."""
        _require_quantity(other)
        result = self.value - other.value
        if result < 0:
            raise NegativeResult(
                f"Impossible de retirer {other} de {self} : le résultat serait négatif"
            )
        return Quantity(result)

    def multiply(self, factor: Union[Decimal, int, str]) -> Quantity:
        if factor is None or isinstance(factor, (bool, float)):
            raise InvalidOperation(f"Facteur invalide : {factor!r}")
        try:
            factor = Decimal(factor)
        except decimal.InvalidOperation:
            raise InvalidOperation(f"Facteur illisible : {factor!r}") from None
        return Quantity(self.value * factor)

    def is_zero(self) -> bool:
        return self.value == 0

    def is_positive(self) -> bool:
        return self.value > 0

    def is_greater_than(self, other: Optional[Quantity]) -> bool:
        return other is not None and self.value > other.value

    def is_greater_than_or_equal(self, other: Optional[Quantity]) -> bool:
        return other is not None and self.value >= other.value

    def __str__(self) -> str:
        return format(self.value, "f")


def _require_quantity(other: object) -> None:
    if not isinstance(other, Quantity):
        raise InvalidOperation(f"Quantité attendue, reçu : {other!r}")


class UnitOfMeasure(enum.Enum):
    """
    Unités de mesure du stock.

    Les propriétés de chaque unité vivent dans une table associée
    plutôt que dans des sous-classes. KILOGRAM et LITER acceptent des
    quantités fractionnaires ; PIECE, BOX et CARTON sont des unités
    discrètes (le type ne tronque pas lui-même les quantités).
    """

    PIECE = "PIECE"
    BOX = "BOX"
    CARTON = "CARTON"
    KILOGRAM = "KILOGRAM"
    LITER = "LITER"

    @classmethod
    def parse(cls, raw: str) -> UnitOfMeasure:
        try:
            return cls(raw.strip().upper())
        except (AttributeError, ValueError):
            raise InvalidOperation(f"Unité de mesure inconnue : {raw!r}") from None

    @property
    def display_name(self) -> str:
        return _UNIT_PROPERTIES[self][0]

    @property
    def abbreviation(self) -> str:
        return _UNIT_PROPERTIES[self][1]

    @property
    def allows_fractional(self) -> bool:
        return _UNIT_PROPERTIES[self][2]

    @property
    def is_discrete(self) -> bool:
        return not self.allows_fractional

    def format_quantity(self, quantity: Quantity) -> str:
        return f"{quantity} {self.abbreviation}"


# unité -> (libellé, abréviation, fractionnaire)
_UNIT_PROPERTIES: dict[UnitOfMeasure, tuple[str, str, bool]] = {
    UnitOfMeasure.PIECE: ("Piece", "pcs", False),
    UnitOfMeasure.BOX: ("Box", "box", False),
    UnitOfMeasure.CARTON: ("Carton", "ctn", False),
    UnitOfMeasure.KILOGRAM: ("Kilogram", "kg", True),
    UnitOfMeasure.LITER: ("Liter", "L", True),
}


SKU_PATTERN = re.compile(r"^[A-Z0-9-]{3,20}$")


def normalize_sku(raw: Optional[str]) -> str:
    """Met le SKU en majuscules et vérifie son format (3 à 20 caractères A-Z, 0-9, -)."""
    sku = (raw or "").strip().upper()
    if not SKU_PATTERN.match(sku):
        raise InvalidOperation(
            f"SKU invalide : {raw!r}. 3 à 20 caractères (A-Z, 0-9, tiret), ex. 'PROD-001'"
        )
    return sku


def normalize_location_id(raw: Optional[str]) -> str:
    """L'emplacement est une référence opaque : seule une valeur vide est refusée."""
    location_id = (raw or "").strip()
    if not location_id:
        raise InvalidOperation("L'emplacement est obligatoire")
    return location_id


# --- Agrégat ---


class Stock:
    """
    Agrégat racine : la quantité d'un SKU à un emplacement.

    Les états sont implicites dans les deux soldes (disponible et
    réservé). Chaque opération vérifie toutes ses préconditions avant
    de modifier quoi que ce soit : en cas d'échec, l'agrégat est
    inchangé. En cas de succès, l'opération retourne l'événement
    émis ; c'est à l'appelant de l'enregistrer dans le Unit of Work.

    Le numéro de version est géré par le repository (verrouillage
    optimiste) : il vaut None tant que le Stock n'a pas été persisté.
    """

    def __init__(
        self,
        id: str,
        sku: str,
        location_id: str,
        unit_of_measure: UnitOfMeasure,
        available_quantity: Optional[Quantity] = None,
        reserved_quantity: Optional[Quantity] = None,
        product_id: Optional[str] = None,
        version: Optional[int] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.product_id = product_id
        self.sku = sku
        self.location_id = location_id
        self.unit_of_measure = unit_of_measure
        self.available_quantity = available_quantity or Quantity.zero()
        self.reserved_quantity = reserved_quantity or Quantity.zero()
        self.version = version
        self.created_at = created_at or _utcnow()
        self.updated_at = updated_at or self.created_at

    @classmethod
    def create(
        cls,
        sku: str,
        location_id: str,
        unit_of_measure: UnitOfMeasure,
        product_id: Optional[str] = None,
    ) -> Stock:
        """Crée un Stock à zéro, lors de la première réception d'un SKU à un emplacement."""
        now = _utcnow()
        return cls(
            id=str(uuid.uuid4()),
            sku=normalize_sku(sku),
            location_id=normalize_location_id(location_id),
            unit_of_measure=unit_of_measure,
            product_id=product_id,
            created_at=now,
            updated_at=now,
        )

    def __repr__(self) -> str:
        return f"<Stock {self.sku}@{self.location_id} v{self.version}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Stock):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    # --- Entrées ---

    def receive_stock(
        self, quantity: Quantity, reason: Optional[str], performed_by: Optional[str]
    ) -> events.StockReceived:
        """Réception fournisseur : le disponible augmente."""
        _require_positive(quantity)
        self.available_quantity = self.available_quantity.add(quantity)
        return events.StockReceived(
            stock_id=self.id,
            sku=self.sku,
            location_id=self.location_id,
            quantity=quantity,
            reason=reason,
            performed_by=performed_by,
            occurred_on=self._touch(),
        )

    # --- Cycle de réservation ---

    def reserve(
        self, quantity: Quantity, order_id: str, performed_by: str = "system"
    ) -> events.StockReserved:
        """Réserve du stock pour une commande (disponible -> réservé)."""
        _require_positive(quantity)
        self._require_available(quantity, "réserver")
        self.available_quantity = self.available_quantity.subtract(quantity)
        self.reserved_quantity = self.reserved_quantity.add(quantity)
        return events.StockReserved(
            stock_id=self.id,
            sku=self.sku,
            location_id=self.location_id,
            quantity=quantity,
            order_id=order_id,
            performed_by=performed_by,
            occurred_on=self._touch(),
        )

    def release_reservation(
        self, quantity: Quantity, order_id: str, performed_by: str = "system"
    ) -> events.ReservationReleased:
        """Annulation de commande : le réservé retourne dans le disponible."""
        _require_positive(quantity)
        self._require_reserved(quantity, "libérer")
        self.reserved_quantity = self.reserved_quantity.subtract(quantity)
        self.available_quantity = self.available_quantity.add(quantity)
        return events.ReservationReleased(
            stock_id=self.id,
            sku=self.sku,
            location_id=self.location_id,
            quantity=quantity,
            order_id=order_id,
            performed_by=performed_by,
            occurred_on=self._touch(),
        )

    def confirm_reservation(
        self, quantity: Quantity, order_id: str, performed_by: str = "system"
    ) -> events.ReservationConfirmed:
        """Commande confirmée : le réservé quitte définitivement l'inventaire."""
        _require_positive(quantity)
        self._require_reserved(quantity, "confirmer")
        self.reserved_quantity = self.reserved_quantity.subtract(quantity)
        return events.ReservationConfirmed(
            stock_id=self.id,
            sku=self.sku,
            location_id=self.location_id,
            quantity=quantity,
            order_id=order_id,
            performed_by=performed_by,
            occurred_on=self._touch(),
        )

    # --- Corrections et sorties directes ---

    def adjust_stock(
        self, new_quantity: Quantity, reason: Optional[str], performed_by: Optional[str]
    ) -> events.StockAdjusted:
        """
        Ajustement manuel (inventaire physique, casse, vol).

        Seule opération qui fixe une valeur absolue. L'événement porte
        la différence signée (nouvelle - ancienne), pas la cible.
        """
        if not isinstance(new_quantity, Quantity):
            raise InvalidOperation("La nouvelle quantité est obligatoire")
        difference = new_quantity.value - self.available_quantity.value
        self.available_quantity = new_quantity
        return events.StockAdjusted(
            stock_id=self.id,
            sku=self.sku,
            location_id=self.location_id,
            difference=difference,
            new_quantity=new_quantity,
            reason=reason,
            performed_by=performed_by,
            occurred_on=self._touch(),
        )

    def withdraw(
        self,
        quantity: Quantity,
        department: Optional[str],
        reason: Optional[str],
        performed_by: Optional[str],
    ) -> events.StockWithdrawn:
        """Retrait interne pour un service (consommation, réquisition)."""
        _require_positive(quantity)
        self._require_available(quantity, "retirer")
        self.available_quantity = self.available_quantity.subtract(quantity)
        return events.StockWithdrawn(
            stock_id=self.id,
            sku=self.sku,
            location_id=self.location_id,
            quantity=quantity,
            department=department,
            reason=reason,
            performed_by=performed_by,
            occurred_on=self._touch(),
        )

    def quick_sale(
        self, quantity: Quantity, order_id: str, performed_by: Optional[str]
    ) -> events.StockSold:
        """Vente comptoir : réservation et confirmation en une seule étape."""
        _require_positive(quantity)
        self._require_available(quantity, "vendre")
        self.available_quantity = self.available_quantity.subtract(quantity)
        return events.StockSold(
            stock_id=self.id,
            sku=self.sku,
            location_id=self.location_id,
            quantity=quantity,
            order_id=order_id,
            performed_by=performed_by,
            occurred_on=self._touch(),
        )

    # --- Gardes ---

    def _require_available(self, quantity: Quantity, action: str) -> None:
        if not self.available_quantity.is_greater_than_or_equal(quantity):
            raise InsufficientStock(
                f"Stock insuffisant pour {action} {self.sku}@{self.location_id}. "
                f"Disponible : {self.available_quantity}, demandé : {quantity}"
            )

    def _require_reserved(self, quantity: Quantity, action: str) -> None:
        if not self.reserved_quantity.is_greater_than_or_equal(quantity):
            raise InsufficientStock(
                f"Impossible de {action} plus que le réservé pour {self.sku}@{self.location_id}. "
                f"Réservé : {self.reserved_quantity}, demandé : {quantity}"
            )

    def _touch(self) -> datetime:
        self.updated_at = _utcnow()
        return self.updated_at


def _require_positive(quantity: object) -> None:
    if not isinstance(quantity, Quantity) or not quantity.is_positive():
        raise InvalidOperation(f"La quantité doit être strictement positive, reçu : {quantity}")


# --- Projection de lecture ---


class MovementType(str, enum.Enum):
    RECEIPT = "RECEIPT"
    RESERVATION = "RESERVATION"
    RELEASE = "RELEASE"
    CONFIRMATION = "CONFIRMATION"
    ADJUSTMENT = "ADJUSTMENT"
    WITHDRAWAL = "WITHDRAWAL"
    SALE = "SALE"


@dataclass(eq=False)
class StockMovement:
    """
    Ligne du journal des mouvements (read model).

    Une ligne immuable par événement, construite uniquement à partir
    des événements du domaine. La quantité est signée : positive pour
    une entrée, négative pour une sortie.
    """

    id: str
    stock_id: str
    movement_type: str
    quantity: Decimal
    reason: Optional[str]
    reference_id: Optional[str]
    performed_by: Optional[str]
    performed_at: datetime
