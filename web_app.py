#!/usr/bin/env python3
"""Wheelie Meter -- web mode.

Serves the measuring page to a phone mounted on the bike. The page posts
deviceorientation `beta` readings to /api/sample; the server runs them
through the measurement session and streams the live state back over
SSE. Finished wheelies are saved to the remote results table on request.

Usage:
    python3 web_app.py                       # Normal mode
    python3 web_app.py --config wheelie.yaml # Custom config
    python3 web_app.py --demo                # Simulated server-side IMU
    python3 web_app.py --re-arm-delay 1      # 1 s cooldown after each wheelie
"""

__version__ = "1.2.0"

import argparse
import json
import logging
import os
import sys

from flask import Flask, Response, jsonify, render_template, request
from flask_cors import CORS

import config as app_config
from stores.results import ResultsClient, ResultsSink
from stores.settings import SettingsStore
from wheelie.calibrator import Calibrator
from wheelie.detector import DetectorConfig
from wheelie.errors import (
    ConfigError,
    InvalidInput,
    InvalidOperation,
    PersistenceError,
    WheelieError,
)
from wheelie.event_bus import EventBus
from wheelie.registry import get_source_class
from wheelie.session import MeasurementSession

# Import sources to trigger @register_source decorators
import sources  # noqa: F401

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidInput: 400,
    InvalidOperation: 409,
    PersistenceError: 502,
    ConfigError: 503,
}

# Upper bound for one batched /api/sample request
MAX_BATCH = 500


def create_app(session: MeasurementSession, results=None, settings=None, bus=None):
    """Create and configure the Flask application.

    Args:
        session: The measurement session all routes operate on.
        results: ResultsClient for save/list/delete, or None when offline.
        settings: SettingsStore for the theme preference, or None.
        bus: EventBus feeding the SSE stream (defaults to session.bus).
    """
    app = Flask(__name__, template_folder="web/templates")
    CORS(app)
    bus = bus or session.bus or EventBus()
    if session.bus is None:
        session.bus = bus

    @app.errorhandler(WheelieError)
    def handle_wheelie_error(exc):
        status = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500
        )
        return jsonify({"error": str(exc), "status": session.status_text()}), status

    def _json_body():
        data = request.get_json(silent=True)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise InvalidInput("Request body must be a JSON object")
        return data

    def _require_results():
        if results is None:
            raise ConfigError("Results store not configured")
        return results

    # --- Routes: UI ---

    @app.route("/")
    def index():
        theme = settings.load_theme() if settings else "dark"
        return render_template(
            "index.html", theme=theme, detector=session.config.to_dict(),
        )

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "version": __version__,
            "measuring": session.is_measuring,
            "stream_clients": bus.client_count,
            "results_store": results is not None,
        })

    # --- Routes: session ---

    @app.route("/api/status")
    def status():
        return jsonify(session.snapshot())

    @app.route("/api/config")
    def detector_config():
        return jsonify({"detector": session.config.to_dict(), "gauge": session.gauge_name})

    @app.route("/api/session/start", methods=["POST"])
    def start():
        session.start(_json_body().get("nickname"))
        return jsonify(session.snapshot())

    @app.route("/api/session/stop", methods=["POST"])
    def stop():
        session.stop()
        return jsonify(session.snapshot())

    @app.route("/api/session/reset", methods=["POST"])
    def reset():
        session.reset()
        return jsonify(session.snapshot())

    @app.route("/api/session/save", methods=["POST"])
    def save():
        if results is not None:
            device = request.headers.get("User-Agent", "")
            session.sink = ResultsSink(results, device=device)
        count = session.save()
        return jsonify({"saved": count, "state": session.snapshot()})

    @app.route("/api/calibrate", methods=["POST"])
    def calibrate():
        offset = session.calibrate(_json_body().get("offset"))
        return jsonify({"offset": offset, "state": session.snapshot()})

    # --- Routes: samples ---

    @app.route("/api/sample", methods=["POST"])
    def sample():
        """Accept one sample {"beta", "timestamp"?} or {"samples": [...]}.

        Malformed angles are processed as below-threshold samples; only a
        malformed request shape is rejected.
        """
        data = _json_body()
        batch = data.get("samples")
        if batch is None:
            batch = [data]
        if not isinstance(batch, list) or len(batch) > MAX_BATCH:
            raise InvalidInput(f"samples must be a list of at most {MAX_BATCH} items")

        records = []
        for item in batch:
            if not isinstance(item, dict):
                item = {"beta": item}
            record = session.on_sample(item.get("beta"), item.get("timestamp"))
            if record is not None:
                records.append(record.to_dict())
        return jsonify({"records": records, "state": session.snapshot()})

    @app.route("/api/history")
    def history():
        return jsonify({
            "session_id": session.session_id,
            "records": [r.to_dict() for r in session.history.records()],
            "unsaved": len(session.history.unsaved()),
        })

    # --- Routes: stored results ---

    @app.route("/api/results")
    def list_results():
        nickname = request.args.get("nickname") or None
        try:
            limit = int(request.args.get("limit", 50))
        except ValueError:
            raise InvalidInput("limit must be an integer") from None
        return jsonify({"results": _require_results().fetch(nickname, limit=limit)})

    @app.route("/api/results/<int:result_id>", methods=["DELETE"])
    def delete_result(result_id: int):
        _require_results().delete(result_id)
        return jsonify({"deleted": result_id})

    # --- Routes: theme ---

    @app.route("/api/theme", methods=["GET", "POST"])
    def theme():
        if settings is None:
            raise ConfigError("Settings store not configured")
        if request.method == "POST":
            settings.save_theme(_json_body().get("theme"))
        return jsonify({"theme": settings.load_theme()})

    # --- Routes: live stream ---

    @app.route("/api/stream")
    def stream():
        """SSE endpoint streaming samples, records and session changes."""
        def generate():
            yield f"event: session\ndata: {json.dumps(session.snapshot())}\n\n"
            for topic, payload in bus.sse_stream():
                if topic == "keepalive":
                    yield ": keepalive\n\n"
                    continue
                if topic not in ("sample", "record", "session"):
                    continue
                try:
                    yield f"event: {topic}\ndata: {json.dumps(payload)}\n\n"
                except (TypeError, ValueError) as exc:
                    logger.debug("SSE serialize error for %s: %s", topic, exc)

        return Response(
            generate(),
            mimetype="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
                "Connection": "keep-alive",
            },
        )

    return app


def load_sources(source_configs, bus, demo=False):
    """Instantiate and start the server-side sample sources."""
    started = []
    for src_cfg in source_configs or []:
        src_type = src_cfg.get("type")
        src_id = src_cfg.get("id", src_type)
        try:
            cls = get_source_class(src_type)
            if demo:
                src_cfg["demo"] = True
            source = cls(src_id, bus, src_cfg)
            source.start()
            started.append(source)
            logger.info("Started source: %s (%s)", src_id, src_type)
        except Exception as exc:
            logger.error("Failed to start source %s: %s", src_id, exc)
    return started


def build_session(cfg, args=None):
    """Assemble settings, calibrator, results client and session from config."""
    detector_opts = dict(cfg["detector"])
    if args is not None:
        for opt, value in (
            ("wheelie_threshold", args.threshold),
            ("danger_threshold", args.danger),
            ("re_arm_delay", args.re_arm_delay),
        ):
            if value is not None:
                detector_opts[opt] = value

    settings = SettingsStore(cfg["settings_path"])
    calibrator = Calibrator.restore(settings)

    try:
        results = ResultsClient.from_config(cfg["results"])
    except ConfigError as exc:
        logger.warning("Saving disabled: %s", exc)
        results = None

    bus = EventBus()
    session = MeasurementSession(
        DetectorConfig.from_dict(detector_opts),
        calibrator,
        bus=bus,
        gauge=(getattr(args, "gauge", None) or cfg["gauge"]),
    )
    session.attach(bus)
    return session, results, settings


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Wheelie Meter web server")
    parser.add_argument("--config", default="wheelie.yaml", help="Config file path")
    parser.add_argument("--host", default=None, help="Bind address")
    parser.add_argument("--port", type=int, default=None, help="Web server port")
    parser.add_argument("--demo", action="store_true", help="Simulate server-side sensors")
    parser.add_argument("--threshold", type=float, default=None,
                        help="Wheelie threshold in degrees")
    parser.add_argument("--danger", type=float, default=None,
                        help="Danger threshold in degrees")
    parser.add_argument("--re-arm-delay", type=float, default=None,
                        help="Seconds to ignore new wheelies after one ends")
    parser.add_argument("--gauge", default=None, help="Gauge curve (linear, curved)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--version", action="version",
                        version=f"Wheelie Meter {__version__}")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    logger.info("Wheelie Meter web v%s starting", __version__)

    try:
        cfg = app_config.load_config(args.config)
        session, results, settings = build_session(cfg, args)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2

    active_sources = load_sources(cfg["sources"], session.bus, demo=args.demo)
    logger.info("Started %d sample source(s)", len(active_sources))

    host = args.host or cfg["web"]["host"]
    port = args.port or int(os.environ.get("PORT", cfg["web"]["port"]))
    app = create_app(session, results=results, settings=settings)
    logger.info("Wheelie Meter at http://%s:%d", host, port)

    try:
        app.run(host=host, port=port, threaded=True, debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        for src in active_sources:
            src.close()
        logger.info("Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
