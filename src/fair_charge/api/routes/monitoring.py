import os
import time
import platform
from flask import Blueprint, jsonify, Response

from fair_charge import config
from fair_charge.api import state, dependencies

monitoring_bp = Blueprint('monitoring', __name__)


@monitoring_bp.route("/metrics", methods=["GET"])
def metrics():
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


@monitoring_bp.route("/version", methods=["GET"])
def version():
    corpus = state.pipeline.store.metadata() if state.pipeline is not None else None
    if corpus is not None:
        corpus = {k: corpus[k] for k in ('source', 'version_stamp', 'num_rules')}
    return jsonify({
        "version": config.APP_VERSION,
        "env": config.APP_ENV,
        "commit": os.getenv("GIT_COMMIT"),
        "python": platform.python_version(),
        "embedding_backend": config.EMBEDDING_BACKEND,
        "completion_backend": config.COMPLETION_BACKEND,
        "corpus": corpus,
    })


@monitoring_bp.route("/api/version", methods=["GET"])
def api_version():
    return version()


@monitoring_bp.route("/api/health", methods=["GET"])
def health():
    if state.pipeline is None:
        return jsonify({"status": "error", "detail": state.pipeline_error or "pipeline not loaded"}), 500
    if len(state.pipeline.store) == 0:
        return jsonify({"status": "error", "detail": "rule corpus is empty"}), 500
    return jsonify({"status": "ok"}), 200


@monitoring_bp.route("/api/health/ready", methods=["GET"])
def health_ready():
    """Readiness probe - pipeline loaded, corpus non-empty, rule index current."""
    pipeline = state.pipeline
    index = pipeline.index if pipeline is not None else None
    checks = {
        'pipeline_loaded': pipeline is not None,
        'rules_loaded': pipeline is not None and len(pipeline.store) > 0,
        'index_current': index is not None and index.stamp == pipeline.store.current_version_stamp(),
    }
    all_ready = all(checks.values())
    return jsonify({
        "ready": all_ready,
        "checks": checks
    }), 200 if all_ready else 503


@monitoring_bp.route("/api/health/live", methods=["GET"])
def health_live():
    """Liveness probe - minimal check that service is running."""
    return jsonify({"alive": True, "uptime_seconds": round(time.time() - state.started_at, 1)}), 200


@monitoring_bp.route("/api/stats/cache", methods=["GET"])
def cache_stats():
    unavailable = dependencies.require_pipeline()
    if unavailable:
        return unavailable
    return jsonify(state.pipeline.stats())


@monitoring_bp.route("/api/stats/verdicts", methods=["GET"])
def verdict_stats():
    """Return verdict statistics for monitoring."""
    return jsonify(state.snapshot_verdict_stats())
