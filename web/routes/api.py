"""REST API v1 — JSON endpoints for the kitchen displays and automation."""

from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import Blueprint, jsonify, request

from web.scheduler import get_alert_scheduler, stop_alert_scheduler
from web.services import (
    get_location_registry,
    get_product_registry,
    get_tag_registry,
    get_tag_service,
)
from tagtracker.alert_scheduler import ViewerScope
from tagtracker.models import Location, Product
from tagtracker.policy import InvalidPolicy, policy_from_dict, policy_to_dict
from tagtracker.registry import LocationNotFound, ProductNotFound, TagNotFound
from tagtracker.status import TagStatus, classify_tag
from tagtracker.utils import as_bool, parse_dt

bp = Blueprint("api", __name__)

PRODUCT_TEXT_FIELDS = ("name", "category", "storage_requirements", "allergens")
LOCATION_TEXT_FIELDS = ("name", "address", "phone", "timezone")
POLICY_FIELDS = ("time_type", "ready_time_minutes", "discard_time_minutes", "day_offset")
# Set by the server, never taken from a request body.
SERVER_FIELDS = ("created_at", "updated_at")


def _error(message, status=400):
    return jsonify({"error": message}), status


def _json_body() -> Optional[dict]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def _text_error(data: dict, fields) -> Optional[str]:
    bad = [f for f in fields if f in data and not isinstance(data[f], str)]
    if bad:
        return f"Fields must be text: {', '.join(bad)}"
    if "name" in fields and "name" in data and not data["name"].strip():
        return "name must not be empty"
    return None


def _timezone_error(data: dict) -> Optional[str]:
    tz_name = data.get("timezone")
    if not tz_name:
        return None
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return f"Unknown timezone: {tz_name}"
    return None


def _tag_payload(tag, verdict) -> dict:
    data = tag.to_dict()
    data["status"] = verdict.to_dict()
    return data


def _scope() -> Optional[ViewerScope]:
    """Viewer scope from ``?location_id=``; ``None`` for an unknown location."""
    location_id = request.args.get("location_id") or None
    if location_id and not get_location_registry().get(location_id):
        return None
    return ViewerScope(location_id=location_id)


# ── Products ─────────────────────────────────────────────────────────

@bp.route("/products")
def list_products():
    active_only = request.args.get("active") == "1"
    products = get_product_registry().list_all(active_only=active_only)
    return jsonify([p.to_dict() for p in products])


@bp.route("/products/<product_id>")
def get_product(product_id):
    product = get_product_registry().get(product_id)
    if not product:
        return _error("Product not found", 404)
    return jsonify(product.to_dict())


@bp.route("/products", methods=["POST"])
def add_product():
    data = _json_body()
    if data is None:
        return _error("Expected a JSON object")
    if "name" not in data:
        return _error("Missing required fields: name")
    error = _text_error(data, PRODUCT_TEXT_FIELDS)
    if error:
        return _error(error)

    for key in ("product_id",) + SERVER_FIELDS:
        data.pop(key, None)
    try:
        product = Product.from_dict(data)
        get_product_registry().add(product)
    except InvalidPolicy as exc:
        return _error(f"Invalid time policy: {exc}")
    return jsonify(product.to_dict()), 201


@bp.route("/products/<product_id>", methods=["PUT"])
def update_product(product_id):
    """Edit a product. Tags already made keep their resolved times."""
    data = _json_body()
    if data is None:
        return _error("Expected a JSON object")
    error = _text_error(data, PRODUCT_TEXT_FIELDS)
    if error:
        return _error(error)

    registry = get_product_registry()
    product = registry.get(product_id)
    if not product:
        return _error("Product not found", 404)

    fields = {k: data[k] for k in PRODUCT_TEXT_FIELDS if k in data}
    if "is_active" in data:
        fields["is_active"] = as_bool(data["is_active"])
    if any(k in data for k in POLICY_FIELDS):
        merged = policy_to_dict(product.policy)
        if data.get("time_type", merged["time_type"]) != merged["time_type"]:
            merged = {}
        merged.update({k: data[k] for k in POLICY_FIELDS if k in data})
        try:
            fields["policy"] = policy_from_dict(merged)
        except InvalidPolicy as exc:
            return _error(f"Invalid time policy: {exc}")

    try:
        product = registry.update(product_id, **fields)
    except ProductNotFound:
        return _error("Product not found", 404)
    return jsonify(product.to_dict())


@bp.route("/products/<product_id>", methods=["DELETE"])
def delete_product(product_id):
    if get_product_registry().remove(product_id):
        return jsonify({"deleted": True})
    return _error("Product not found", 404)


# ── Locations ────────────────────────────────────────────────────────

@bp.route("/locations")
def list_locations():
    locations = get_location_registry().list_all()
    return jsonify([loc.to_dict() for loc in locations])


@bp.route("/locations", methods=["POST"])
def add_location():
    data = _json_body()
    if data is None:
        return _error("Expected a JSON object")
    if "name" not in data:
        return _error("Missing required fields: name")
    error = _text_error(data, LOCATION_TEXT_FIELDS) or _timezone_error(data)
    if error:
        return _error(error)

    for key in ("location_id",) + SERVER_FIELDS:
        data.pop(key, None)
    location = Location.from_dict(data)
    get_location_registry().add(location)
    return jsonify(location.to_dict()), 201


@bp.route("/locations/<location_id>", methods=["PUT"])
def update_location(location_id):
    data = _json_body()
    if data is None:
        return _error("Expected a JSON object")
    error = _text_error(data, LOCATION_TEXT_FIELDS) or _timezone_error(data)
    if error:
        return _error(error)

    fields = {k: data[k] for k in LOCATION_TEXT_FIELDS if k in data}
    if "is_active" in data:
        fields["is_active"] = as_bool(data["is_active"])
    try:
        location = get_location_registry().update(location_id, **fields)
    except LocationNotFound:
        return _error("Location not found", 404)
    return jsonify(location.to_dict())


@bp.route("/locations/<location_id>", methods=["DELETE"])
def delete_location(location_id):
    if not get_location_registry().remove(location_id):
        return _error("Location not found", 404)
    stop_alert_scheduler(ViewerScope(location_id=location_id))
    return jsonify({"deleted": True})


# ── Tags ─────────────────────────────────────────────────────────────

@bp.route("/tags")
def list_tags():
    status = None
    status_filter = request.args.get("status")
    if status_filter:
        try:
            status = TagStatus(status_filter)
        except ValueError:
            return _error(f"Invalid status: {status_filter}")

    results = get_tag_service().list_tags(
        location_id=request.args.get("location_id") or None,
        status=status,
        query=request.args.get("q"),
    )
    return jsonify([_tag_payload(tag, verdict) for tag, verdict in results])


@bp.route("/tags/summary")
def tag_summary():
    counts = get_tag_service().status_counts(request.args.get("location_id") or None)
    return jsonify(counts)


@bp.route("/tags", methods=["POST"])
def create_tag():
    data = _json_body()
    if data is None:
        return _error("Expected a JSON object")
    required = ["product_id", "location_id", "created_by"]
    missing = [f for f in required if not data.get(f)]
    if missing:
        return _error(f"Missing required fields: {', '.join(missing)}")
    error = _text_error(data, ("product_id", "location_id", "created_by", "batch_number", "notes"))
    if error:
        return _error(error)

    try:
        made_at = parse_dt(data.get("made_at"))
        quantity = int(data.get("quantity", 1))
    except (TypeError, ValueError) as exc:
        return _error(f"Invalid field value: {exc}")
    if quantity < 1:
        return _error("quantity must be at least 1")

    service = get_tag_service()
    try:
        tag = service.create_tag(
            product_id=data["product_id"],
            location_id=data["location_id"],
            created_by=data["created_by"],
            made_at=made_at,
            quantity=quantity,
            batch_number=data.get("batch_number", ""),
            notes=data.get("notes", ""),
        )
    except ProductNotFound:
        return _error("Product not found", 404)
    except LocationNotFound:
        return _error("Location not found", 404)
    except InvalidPolicy as exc:
        return _error(f"Invalid time policy: {exc}")
    return jsonify(_tag_payload(tag, service.status(tag))), 201


@bp.route("/tags/<tag_id>/status")
def tag_status(tag_id):
    tag = get_tag_registry().get(tag_id)
    if not tag:
        return _error("Tag not found", 404)
    return jsonify(classify_tag(tag).to_dict())


@bp.route("/tags/<tag_id>/print", methods=["POST"])
def print_tag(tag_id):
    try:
        tag = get_tag_service().mark_printed(tag_id)
    except TagNotFound:
        return _error("Tag not found", 404)
    return jsonify(tag.to_dict())


@bp.route("/tags/<tag_id>/discard", methods=["POST"])
def discard_tag(tag_id):
    try:
        tag = get_tag_service().discard(tag_id)
    except TagNotFound:
        return _error("Tag not found", 404)
    return jsonify(tag.to_dict())


# ── Notifications ────────────────────────────────────────────────────

@bp.route("/notifications")
def list_notifications():
    """Front event, ordered queue and loop status for a viewer scope.

    ``refresh=1`` runs a check immediately instead of waiting for the
    next scheduled one.
    """
    scope = _scope()
    if scope is None:
        return _error("Location not found", 404)
    alerts = get_alert_scheduler(scope)
    if request.args.get("refresh") == "1" or not alerts.running:
        alerts.tick()
    return jsonify(alerts.snapshot())


@bp.route("/notifications", methods=["DELETE"])
def stop_notifications():
    """Stop the alert loop for a scope, on logout or a location switch."""
    scope = ViewerScope(location_id=request.args.get("location_id") or None)
    return jsonify({"stopped": stop_alert_scheduler(scope)})


@bp.route("/notifications/<event_id>/acknowledge", methods=["POST"])
def acknowledge_notification(event_id):
    scope = _scope()
    if scope is None:
        return _error("Location not found", 404)
    event = get_alert_scheduler(scope).acknowledge(event_id)
    return jsonify({
        "acknowledged": event is not None,
        "event": event.to_dict() if event else None,
    })
