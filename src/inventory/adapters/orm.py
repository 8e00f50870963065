"""
Tables SQLAlchemy et mapping du journal des mouvements.

On définit les tables séparément du modèle de domaine, qui reste
ignorant de la persistance (persistence ignorance).

Le Stock n'est pas mappé par l'ORM : le repository écrit ses lignes
avec des requêtes Core explicites, pour que le contrôle de version
(UPDATE ... WHERE version = ?) soit visible et non délégué à l'ORM.
Le journal des mouvements, simple projection en ajout seul, utilise
le classical mapping.
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    inspect,
)
from sqlalchemy.orm import registry

from inventory.domain import model

metadata = MetaData()
mapper_registry = registry(metadata=metadata)


class ExactDecimal(TypeDecorator):
    """
    Decimal(19, 4) exact quel que soit le moteur.

    SQLite range NUMERIC en flottant binaire : la valeur y est stockée
    en texte. Les autres moteurs gardent leur NUMERIC natif.
    """

    impl = Numeric(19, 4)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(32))
        return dialect.type_descriptor(Numeric(19, 4, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return format(Decimal(value), "f")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


# --- Définition des tables ---

stocks = Table(
    "stocks",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("product_id", String(36), nullable=True),
    Column("sku", String(20), nullable=False),
    Column("location_id", String(36), nullable=False),
    Column("available_quantity", ExactDecimal(), nullable=False),
    Column("reserved_quantity", ExactDecimal(), nullable=False),
    Column("unit_of_measure", String(10), nullable=False),
    Column("version", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("sku", "location_id", name="uk_stock_sku_location"),
)

stock_movements = Table(
    "stock_movements",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "stock_id",
        String(36),
        ForeignKey("stocks.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("movement_type", String(20), nullable=False),
    Column("quantity", ExactDecimal(), nullable=False),
    Column("reason", Text, nullable=True),
    Column("reference_id", String(100), nullable=True),
    Column("performed_by", String(100), nullable=True),
    Column("performed_at", DateTime(timezone=True), nullable=False),
    Index("ix_stock_movements_stock_id", "stock_id"),
)


def start_mappers() -> None:
    """
    Configure le mapping du journal des mouvements.

    Idempotent : l'application et les tests peuvent l'appeler
    chacun de leur côté.
    """
    if inspect(model.StockMovement, raiseerr=False) is not None:
        return
    mapper_registry.map_imperatively(model.StockMovement, stock_movements)
