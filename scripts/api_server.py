import datetime
import os
import sys
from typing import Any, Dict, List

from flask import Flask, jsonify, request
from flask_cors import CORS
from loguru import logger

# Ensure src/ is on path when running as a script
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from tourplan.cities import resolve_start_location
from tourplan.config import configure_logging
from tourplan.data import generate_practitioners
from tourplan.models import ConfigurationError, GeoPoint, OptimizationCriteria, OptimizedDay, Practitioner
from tourplan.optimizer import ResultStore
from tourplan.report import to_ics
from tourplan.schedule import period_start_date, reorder_day

app = Flask(__name__)
CORS(app)

store = ResultStore()


def _practitioners_from_body(body: Dict[str, Any]) -> List[Practitioner]:
    if body.get("practitioners"):
        return [Practitioner.from_dict(p) for p in body["practitioners"]]
    count = int(body.get("practitioner_count", 12))
    return generate_practitioners(seed=999, n=count)


def _start_date_from_body(body: Dict[str, Any], criteria: OptimizationCriteria) -> datetime.date:
    """
    Body start_date first, then criteria.start_date, then today. A named
    period other than custom overrides all of them.
    """
    today = datetime.date.today()
    raw = body.get("start_date")
    if raw:
        try:
            explicit = datetime.date.fromisoformat(str(raw))
        except ValueError:
            raise ConfigurationError(f"invalid start_date: {raw!r}") from None
    else:
        explicit = None
    chosen = explicit or criteria.start_date
    period = body.get("period")
    if period:
        return period_start_date(period, today, custom=chosen)
    return chosen or today


@app.errorhandler(ConfigurationError)
def configuration_error(exc):
    return jsonify({"error": str(exc)}), 400


@app.route("/api/practitioners", methods=["GET"])
def api_practitioners():
    try:
        count = int(request.args.get("count", 30))
    except ValueError:
        return jsonify({"error": "count must be an integer"}), 400
    return jsonify([p.to_dict() for p in generate_practitioners(seed=999, n=count)])


@app.route("/api/optimize", methods=["POST"])
def api_optimize():
    body = request.get_json(force=True, silent=True) or {}
    try:
        criteria = OptimizationCriteria.from_dict(body.get("criteria") or {})
        start_date = _start_date_from_body(body, criteria)
        practitioners = _practitioners_from_body(body)
        logger.info(f"POST /api/optimize with {len(practitioners)} practitioners")
        result = store.run(practitioners, criteria, start_date)
    except KeyError as exc:
        return jsonify({"error": f"missing field: {exc.args[0]}"}), 400
    except (TypeError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(result.to_dict())


@app.route("/api/optimize/latest.ics", methods=["GET"])
def api_latest_ics():
    if store.result is None:
        return jsonify({"error": "no optimization has been run"}), 404
    return app.response_class(to_ics(store.result), mimetype="text/calendar")


@app.route("/api/day/reorder", methods=["POST"])
def api_reorder_day():
    """
    Recompute times of the latest result's day after a manual reorder.
    The stored result is not modified.
    """
    body = request.get_json(force=True, silent=True) or {}
    if store.result is None:
        return jsonify({"error": "no optimization has been run"}), 404
    try:
        day_index = int(body.get("day", 1))
    except (TypeError, ValueError):
        return jsonify({"error": "day must be an integer"}), 400
    days: List[OptimizedDay] = [d for d in store.result.days if d.day_index == day_index]
    if not days:
        return jsonify({"error": f"unknown day {day_index}"}), 404
    try:
        location = body.get("start_location") or store.result.start
        if isinstance(location, dict):
            location = GeoPoint(float(location["lat"]), float(location["lon"]))
        start = resolve_start_location(location)
        day = reorder_day(days[0], [str(pid) for pid in body.get("order", [])], start)
    except KeyError as exc:
        return jsonify({"error": f"missing field: {exc.args[0]}"}), 400
    except (TypeError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(day.to_dict())


if __name__ == "__main__":
    configure_logging()
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=False)
