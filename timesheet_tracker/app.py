from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from flask import Flask, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from .errors import StorageError
from .stats import (
    DEFAULT_HOURLY_RATE,
    WEEKLY_TARGET_MINUTES,
    course_overview,
    cumulative_stats,
    entry_summary,
    format_duration,
    format_week_range,
    group_entries_by_week,
    minutes_to_duration,
    sort_entries_newest_first,
    to_json,
    weekly_stats,
)
from .storage import JsonEntryStore, JsonRateStore, Store

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = BASE_DIR / "data"

ENTRY_TEXT_FIELDS = ("date", "timeIn", "timeOut", "courseName", "workMarkdown", "createdAt")

logger = logging.getLogger(__name__)


def create_app(
    test_config: Optional[Mapping[str, Any]] = None,
    entry_store: Optional[Store] = None,
    rate_store: Optional[Store] = None,
) -> Flask:
    app = Flask(__name__)
    app.config.update(
        DATA_DIR=str(DATA_DIR),
        ENTRIES_FILE="timesheet.json",
        RATES_FILE="courseRates.json",
        HOST="127.0.0.1",
        PORT=4000,
        LOG_LEVEL="INFO",
        MAX_CONTENT_LENGTH=1024 * 1024,
    )
    app.config.from_prefixed_env("TIMESHEET")
    if test_config:
        app.config.update(test_config)
    app.json.sort_keys = False

    data_dir = Path(app.config["DATA_DIR"])
    if entry_store is None:
        entry_store = JsonEntryStore(data_dir / app.config["ENTRIES_FILE"])
        entry_store.ensure()
    if rate_store is None:
        rate_store = JsonRateStore(data_dir / app.config["RATES_FILE"])
        rate_store.ensure()
    app.extensions["timesheet"] = {"entries": entry_store, "rates": rate_store}

    register_error_handlers(app)
    register_routes(app)
    return app


def get_entry_store() -> Store:
    return current_app.extensions["timesheet"]["entries"]


def get_rate_store() -> Store:
    return current_app.extensions["timesheet"]["rates"]


def load_rates() -> Dict[str, Any]:
    return dict(get_rate_store().items())


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(404)
    def not_found(_exc):
        return jsonify({"message": "Not found"}), 404

    @app.errorhandler(HTTPException)
    def http_error(exc: HTTPException):
        return jsonify({"message": exc.description}), exc.code

    @app.errorhandler(StorageError)
    def storage_error(exc: StorageError):
        logger.error("Storage failure: %s", exc)
        return jsonify({"message": "Failed to save data."}), 500

    @app.errorhandler(Exception)
    def unhandled_error(exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"message": "Internal server error."}), 500


def register_routes(app: Flask) -> None:
    @app.route("/api/entries", methods=["GET"])
    def list_entries():
        entries = [normalize_entry(entry) for entry in get_entry_store().list()]
        if request.args.get("sort") == "newest":
            entries = sort_entries_newest_first(entries)
        return jsonify(entries)

    @app.route("/api/entries", methods=["POST"])
    def create_entry():
        error, cleaned = prepare_entry_payload(request.get_json(silent=True))
        if error:
            return jsonify({"message": error}), 400

        store = get_entry_store()
        cleaned.setdefault("id", uuid.uuid4().hex)
        cleaned.setdefault("createdAt", utc_timestamp())
        if store.get(cleaned["id"]) is not None:
            return jsonify({"message": "Entry id already exists."}), 400

        store.put(cleaned["id"], cleaned)
        logger.info("Created entry %s", cleaned["id"])
        return jsonify(cleaned), 201

    @app.route("/api/entries/<entry_id>", methods=["PUT"])
    def update_entry(entry_id: str):
        store = get_entry_store()
        existing = store.get(entry_id)
        if existing is None:
            return jsonify({"message": "Entry not found."}), 404

        error, cleaned = prepare_entry_payload(request.get_json(silent=True), existing)
        if error:
            return jsonify({"message": error}), 400

        cleaned["id"] = entry_id
        store.put(entry_id, cleaned)
        logger.info("Updated entry %s", entry_id)
        return jsonify(cleaned)

    @app.route("/api/entries/<entry_id>", methods=["DELETE"])
    def delete_entry(entry_id: str):
        if not get_entry_store().delete(entry_id):
            return jsonify({"message": "Entry not found."}), 404
        logger.info("Deleted entry %s", entry_id)
        return "", 204

    @app.route("/api/entries/weeks", methods=["GET"])
    def entries_by_week():
        entries = sort_entries_newest_first(normalize_entry(entry) for entry in get_entry_store().list())
        groups = group_entries_by_week(entries)
        for group in groups:
            group["entries"] = [dict(entry, summary=entry_summary(entry)) for entry in group["entries"]]
        return jsonify(groups)

    @app.route("/api/course-rates", methods=["GET"])
    def list_course_rates():
        return jsonify(load_rates())

    @app.route("/api/course-rates", methods=["PUT"])
    def upsert_course_rate():
        error, course_name, rate = prepare_rate_payload(request.get_json(silent=True))
        if error:
            return jsonify({"message": error}), 400

        get_rate_store().put(course_name, rate)
        logger.info("Set rate for %r to %s", course_name, rate)
        return jsonify(load_rates())

    @app.route("/api/course-rates/<path:course_name>", methods=["DELETE"])
    def delete_course_rate(course_name: str):
        course_name = course_name.strip()
        if get_rate_store().delete(course_name):
            logger.info("Removed rate for %r", course_name)
        return "", 204

    @app.route("/api/courses", methods=["GET"])
    def courses():
        return jsonify(course_overview(get_entry_store().list(), load_rates()))

    @app.route("/api/stats", methods=["GET"])
    def stats():
        entries = get_entry_store().list()
        rates = load_rates()

        weekly = []
        for week in weekly_stats(entries, rates):
            payload = to_json(week)
            payload["label"] = format_week_range(week.week_start, week.week_end)
            weekly.append(payload)

        totals = cumulative_stats(entries, rates)
        cumulative = to_json(totals)
        cumulative["durationLabel"] = format_duration(minutes_to_duration(totals.total_minutes))

        return jsonify(
            {
                "weekly": weekly,
                "cumulative": cumulative,
                "weeklyTargetMinutes": WEEKLY_TARGET_MINUTES,
                "defaultHourlyRate": DEFAULT_HOURLY_RATE,
            }
        )


def utc_timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_entry(entry: Mapping[str, Any]) -> Dict[str, Any]:
    cleaned = dict(entry)
    if not isinstance(cleaned.get("courseName"), str):
        cleaned["courseName"] = ""
    return cleaned


def prepare_entry_payload(
    payload: Any, existing: Optional[Mapping[str, Any]] = None
) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
    if not isinstance(payload, dict):
        return "Invalid entry payload.", None

    entry_id = payload.get("id")
    if entry_id is not None and (not isinstance(entry_id, str) or not entry_id.strip()):
        return "Entry id must be a non-empty string.", None
    for field in ENTRY_TEXT_FIELDS:
        value = payload.get(field)
        if value is not None and not isinstance(value, str):
            return f"{field} must be a string.", None

    cleaned = dict(payload)
    if entry_id is None:
        cleaned.pop("id", None)
    if cleaned.get("createdAt") is None:
        cleaned.pop("createdAt", None)
        if existing is not None and existing.get("createdAt"):
            cleaned["createdAt"] = existing["createdAt"]
    if isinstance(cleaned.get("courseName"), str):
        cleaned["courseName"] = cleaned["courseName"].strip()
    return None, cleaned


def prepare_rate_payload(payload: Any) -> Tuple[Optional[str], Optional[str], Optional[float]]:
    if not isinstance(payload, dict):
        payload = {}

    course_name = payload.get("courseName")
    if not isinstance(course_name, str) or not course_name.strip():
        return "courseName is required.", None, None

    rate = parse_rate(payload.get("rate"))
    if rate is None:
        return "rate must be a non-negative number.", None, None
    return None, course_name.strip(), rate


def parse_rate(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = int(text)
        except ValueError:
            try:
                value = float(text)
            except ValueError:
                return None
    if not isinstance(value, (int, float)):
        return None
    try:
        if not math.isfinite(float(value)) or value < 0:
            return None
    except OverflowError:
        return None
    return value


def main() -> None:
    application = create_app()
    logging.basicConfig(level=application.config["LOG_LEVEL"])
    application.run(host=application.config["HOST"], port=application.config["PORT"])


if __name__ == "__main__":
    main()
