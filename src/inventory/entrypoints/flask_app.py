"""
Point d'entrée Flask.

L'API Flask est un thin adapter : elle se contente de
convertir les requêtes HTTP en commands, les envoie au
message bus, et convertit les résultats en réponses HTTP.

L'API ne contient aucune logique métier. Les erreurs métier
sont traduites en réponses JSON {"code", "message"} par les
errorhandlers en fin de module.
"""

from __future__ import annotations

import logging

from flask import Flask, current_app, g, jsonify, request

from inventory import config
from inventory.adapters import orm, repository
from inventory.domain import commands, model
from inventory.service_layer import bootstrap
from inventory.views import views

settings = config.get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
orm.start_mappers()


def make_bus():
    """Construit un message bus neuf, avec sa propre unit of work."""
    return bootstrap.bootstrap(start_orm=False, settings=settings)


app.config["BUS_FACTORY"] = make_bus


def get_bus():
    """
    Retourne le message bus de la requête courante.

    L'unit of work porte une session et des tampons d'événements :
    elle n'est jamais partagée entre deux requêtes.
    """
    if "bus" not in g:
        g.bus = current_app.config["BUS_FACTORY"]()
    return g.bus


class ValidationError(Exception):
    """Corps de requête absent ou incomplet."""


def _body(*required: str) -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Corps JSON attendu")
    missing = [field for field in required if data.get(field) is None]
    if missing:
        raise ValidationError(f"Champ obligatoire manquant : {', '.join(missing)}")
    return data


def _stock_json(stock: model.Stock) -> dict:
    return {
        "id": stock.id,
        "product_id": stock.product_id,
        "sku": stock.sku,
        "location_id": stock.location_id,
        "available_quantity": str(stock.available_quantity),
        "reserved_quantity": str(stock.reserved_quantity),
        "unit_of_measure": stock.unit_of_measure.value,
        "version": stock.version,
        "created_at": stock.created_at.isoformat(),
        "updated_at": stock.updated_at.isoformat(),
    }


def _handle(cmd: commands.Command):
    stock = get_bus().handle(cmd).pop(0)
    return jsonify(_stock_json(stock)), 200


# --- Écriture ---


@app.route("/stocks/receive", methods=["POST"])
def receive_endpoint():
    """
    POST /stocks/receive
    Body JSON : { sku, location_id, quantity, unit_of_measure?, reason?, performed_by?, product_id? }

    Réceptionne du stock ; crée le Stock s'il n'existe pas encore.
    """
    data = _body("sku", "location_id", "quantity")
    return _handle(
        commands.ReceiveStock(
            sku=data["sku"],
            location_id=data["location_id"],
            quantity=data["quantity"],
            unit_of_measure=data.get("unit_of_measure", "PIECE"),
            reason=data.get("reason"),
            performed_by=data.get("performed_by"),
            product_id=data.get("product_id"),
        )
    )


@app.route("/stocks/reserve", methods=["POST"])
def reserve_endpoint():
    """
    POST /stocks/reserve
    Body JSON : { sku, location_id, quantity, order_id, performed_by? }
    """
    data = _body("sku", "location_id", "quantity", "order_id")
    return _handle(
        commands.ReserveStock(
            sku=data["sku"],
            location_id=data["location_id"],
            quantity=data["quantity"],
            order_id=data["order_id"],
            performed_by=data.get("performed_by") or "system",
        )
    )


@app.route("/stocks/release", methods=["POST"])
def release_endpoint():
    data = _body("stock_id", "quantity", "order_id")
    return _handle(
        commands.ReleaseReservation(
            stock_id=data["stock_id"],
            quantity=data["quantity"],
            order_id=data["order_id"],
            performed_by=data.get("performed_by") or "system",
        )
    )


@app.route("/stocks/confirm", methods=["POST"])
def confirm_endpoint():
    data = _body("stock_id", "quantity", "order_id")
    return _handle(
        commands.ConfirmReservation(
            stock_id=data["stock_id"],
            quantity=data["quantity"],
            order_id=data["order_id"],
            performed_by=data.get("performed_by") or "system",
        )
    )


@app.route("/stocks/adjust", methods=["POST"])
def adjust_endpoint():
    """
    POST /stocks/adjust
    Body JSON : { stock_id, new_quantity, reason?, performed_by? }

    Fixe le disponible à une valeur absolue.
    """
    data = _body("stock_id", "new_quantity")
    return _handle(
        commands.AdjustStock(
            stock_id=data["stock_id"],
            new_quantity=data["new_quantity"],
            reason=data.get("reason"),
            performed_by=data.get("performed_by"),
        )
    )


@app.route("/stocks/withdraw", methods=["POST"])
def withdraw_endpoint():
    data = _body("stock_id", "quantity")
    return _handle(
        commands.WithdrawStock(
            stock_id=data["stock_id"],
            quantity=data["quantity"],
            department=data.get("department"),
            reason=data.get("reason"),
            performed_by=data.get("performed_by"),
        )
    )


@app.route("/stocks/sale", methods=["POST"])
def sale_endpoint():
    data = _body("stock_id", "quantity", "order_id")
    return _handle(
        commands.QuickSale(
            stock_id=data["stock_id"],
            quantity=data["quantity"],
            order_id=data["order_id"],
            performed_by=data.get("performed_by"),
        )
    )


# --- Lecture (CQRS) ---


@app.route("/stocks/<stock_id>", methods=["GET"])
def stock_view_endpoint(stock_id: str):
    result = views.stock(stock_id, get_bus().uow)
    if result is None:
        raise model.StockNotFound(f"Stock introuvable : {stock_id}")
    return jsonify(result), 200


@app.route("/stocks", methods=["GET"])
def stocks_view_endpoint():
    """
    GET /stocks?sku=&location_id=

    Avec les deux filtres, retourne le Stock correspondant (ou 404) ;
    sinon la liste filtrée.
    """
    sku = request.args.get("sku")
    location_id = request.args.get("location_id")
    result = views.stocks(get_bus().uow, sku=sku, location_id=location_id)
    if sku and location_id:
        if not result:
            raise model.StockNotFound(
                f"Stock introuvable pour le SKU {sku} à l'emplacement {location_id}"
            )
        return jsonify(result[0]), 200
    return jsonify(result), 200


@app.route("/stocks/paged", methods=["GET"])
def stocks_page_endpoint():
    page = request.args.get("page", 0, type=int)
    size = request.args.get("size", 20, type=int)
    return jsonify(views.stocks_page(get_bus().uow, page=page, size=size)), 200


@app.route("/stocks/<stock_id>/movements", methods=["GET"])
def movements_view_endpoint(stock_id: str):
    return jsonify(views.movements(stock_id, get_bus().uow)), 200


# --- Traduction des erreurs ---


def _error(code: str, error: Exception, status: int):
    return jsonify({"code": code, "message": str(error)}), status


@app.errorhandler(model.StockNotFound)
def stock_not_found(e):
    return _error("STOCK_NOT_FOUND", e, 404)


@app.errorhandler(model.InsufficientStock)
def insufficient_stock(e):
    return _error("INSUFFICIENT_STOCK", e, 409)


@app.errorhandler(model.InvalidOperation)
def invalid_operation(e):
    return _error("INVALID_OPERATION", e, 400)


@app.errorhandler(repository.ConcurrencyConflict)
def concurrency_conflict(e):
    logger.warning("Conflit de concurrence non résolu : %s", e)
    return _error("CONCURRENT_MODIFICATION", e, 409)


@app.errorhandler(repository.DuplicateKey)
def duplicate_stock(e):
    return _error("DUPLICATE_STOCK", e, 409)


@app.errorhandler(ValidationError)
def validation_error(e):
    return _error("VALIDATION_ERROR", e, 400)


# --- Administration ---


@app.cli.command("init-db")
def init_db_command():
    """Crée les tables en base."""
    engine = get_bus().uow.session_factory.kw["bind"]
    orm.metadata.create_all(engine)
    logger.info("Tables créées sur %s", engine.url)
