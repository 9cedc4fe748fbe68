import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pytz
from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .alerts import AlertHistoryLog, AlertRuleSet
from .config import settings
from .database import DatabaseService
from .models import SensorKind
from .readings import ReadingStore

logger = logging.getLogger("AutoFarm")

api = Blueprint("api", __name__)

UNIT_FIELDS = ("name", "area", "type", "lighting_level", "sensors")
# May legitimately be falsy (0, [])
OPTIONAL_FALSY = ("lighting_level", "sensors")


@dataclass
class Services:
    database: DatabaseService
    store: ReadingStore
    rules: AlertRuleSet
    history: AlertHistoryLog


def services() -> Services:
    return current_app.extensions["autofarm"]


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a stored naive UTC timestamp in the configured timezone."""
    if value is None:
        return None
    return pytz.utc.localize(value).astimezone(pytz.timezone(settings.timezone)).isoformat()


def error(message: str, status: int):
    return jsonify({"error": message}), status


def query_limit(default: int, maximum: Optional[int] = None) -> int:
    try:
        limit = int(request.args.get("limit", default))
    except (TypeError, ValueError):
        limit = default
    if limit <= 0:
        limit = default
    if maximum is not None:
        limit = min(limit, maximum)
    return limit


def unit_payload():
    data = request.get_json(silent=True) or {}
    missing = [
        name
        for name in UNIT_FIELDS
        if data.get(name) is None or (name not in OPTIONAL_FALSY and not data.get(name))
    ]
    return data, missing


@api.route("/")
def index():
    return "AutoFarm backend is running!"


@api.route("/health")
def health_check():
    """Health check endpoint"""
    return jsonify({"status": "healthy"})


@api.route("/api/units", methods=["GET"])
def list_units():
    svc = services()
    current = svc.store.current_readings()
    units = []
    for unit in svc.database.list_units():
        entry = svc.database.unit_to_dict(unit)
        entry.update(current.get(unit.id, {}))
        units.append(entry)
    return jsonify(units)


@api.route("/api/units", methods=["POST"])
def create_unit():
    data, missing = unit_payload()
    if missing:
        return error(f"Incomplete data: missing {', '.join(missing)}", 400)
    unit = services().database.create_unit(
        data["name"], data["area"], data["type"], data["lighting_level"], data["sensors"]
    )
    return jsonify({"message": "Unit created", "id": unit.id, "name": unit.name}), 201


@api.route("/api/units/<int:unit_id>", methods=["PUT"])
def update_unit(unit_id: int):
    data, missing = unit_payload()
    if missing:
        return error(f"Incomplete data: missing {', '.join(missing)}", 400)
    unit = services().database.update_unit(
        unit_id, data["name"], data["area"], data["type"], data["lighting_level"], data["sensors"]
    )
    if unit is None:
        return error(f"Unit {unit_id} not found", 404)
    return jsonify(
        {"message": f"Unit {unit_id} updated", "unit": services().database.unit_to_dict(unit)}
    )


@api.route("/api/units/<int:unit_id>", methods=["DELETE"])
def delete_unit(unit_id: int):
    if not services().database.delete_unit(unit_id):
        return error(f"Unit {unit_id} not found", 404)
    services().store.forget_unit(unit_id)
    return jsonify({"message": f"Unit {unit_id} deleted"})


@api.route("/api/units/current_readings", methods=["GET"])
def current_readings():
    current = services().store.current_readings()
    return jsonify({str(unit_id): values for unit_id, values in current.items()})


@api.route("/api/units/<int:unit_id>/readings", methods=["GET"])
def unit_readings(unit_id: int):
    sensor = request.args.get("sensor")
    if not sensor:
        return error("Query parameter 'sensor' is required", 400)
    try:
        kind = SensorKind(sensor)
    except ValueError:
        return error(f"Invalid sensor type: {sensor}", 400)
    limit = query_limit(settings.max_history, settings.max_history)
    rows = services().store.history(unit_id, kind, limit)
    return jsonify(
        [{"value": row.value, "timestamp": format_timestamp(row.timestamp)} for row in rows]
    )


@api.route("/api/alerts", methods=["POST"])
def create_alert():
    data = request.get_json(silent=True) or {}
    if not data.get("name") or not data.get("device") or not data.get("condition"):
        return error("Incomplete data: name, device and condition are required", 400)
    rule = services().rules.create(
        data["name"], data["device"], data["condition"], data.get("limit"), data.get("action")
    )
    return jsonify({"message": "Alert created", "id": rule.id}), 201


@api.route("/api/alerts", methods=["GET"])
def list_alerts():
    return jsonify([rule.to_dict() for rule in services().rules.list()])


@api.route("/api/alerts/<int:alert_id>/toggle", methods=["PUT"])
def toggle_alert(alert_id: int):
    rule = services().rules.toggle(alert_id)
    if rule is None:
        return error(f"Alert {alert_id} not found", 404)
    return jsonify({"message": f"Alert {alert_id} updated", "newState": rule.active})


@api.route("/api/alerts/<int:alert_id>", methods=["DELETE"])
def delete_alert(alert_id: int):
    if not services().rules.delete(alert_id):
        return error(f"Alert {alert_id} not found", 404)
    return jsonify({"message": f"Alert {alert_id} deleted"})


@api.route("/api/alerts/history", methods=["GET"])
def alert_history():
    entries = services().history.recent(query_limit(settings.alert_history_limit))
    return jsonify(
        [
            {
                "id": entry.id,
                "alert_id": entry.alert_id,
                "alert_name": entry.alert_name,
                "unit_id": entry.unit_id,
                "triggered_value": entry.triggered_value,
                "message": entry.message,
                "action_taken": entry.action_taken,
                "timestamp": format_timestamp(entry.timestamp),
            }
            for entry in entries
        ]
    )


@api.errorhandler(ValueError)
def handle_value_error(e):
    return error(str(e), 400)


@api.errorhandler(Exception)
def handle_exception(e):
    if isinstance(e, HTTPException):
        return e
    logger.error(f"Request to {request.path} failed: {e}")
    return error(str(e), 500)


def create_app(database: DatabaseService, store: Optional[ReadingStore] = None) -> Flask:
    """Build the REST API around an open database."""
    app = Flask(__name__)
    CORS(app)
    app.extensions["autofarm"] = Services(
        database=database,
        store=store or ReadingStore(database),
        rules=AlertRuleSet(database),
        history=AlertHistoryLog(database),
    )
    app.register_blueprint(api)
    return app
