import logging
from typing import Any, Dict, Optional, Tuple

from flask import request, jsonify

from fair_charge import config
from fair_charge.api import state
from fair_charge.pipeline import build_pipeline

logger = logging.getLogger("api")


def load_pipeline() -> None:
    """Build the pipeline into api.state; the app still starts if this fails."""
    try:
        state.pipeline = build_pipeline()
        state.pipeline_error = None
        meta = state.pipeline.store.metadata()
        logger.info(
            f"[api] Loaded {meta['num_rules']} rules from {meta['source']} "
            f"(embedding backend={config.EMBEDDING_BACKEND}, completion backend={config.COMPLETION_BACKEND})"
        )
    except Exception as e:
        state.pipeline = None
        state.pipeline_error = str(e)
        logger.error(f"[api] Failed to load pipeline: {e}")


def require_pipeline() -> Optional[Tuple[Any, int]]:
    if state.pipeline is None:
        return jsonify({"error": "pipeline_unavailable", "detail": state.pipeline_error}), 503
    return None


def json_object_body() -> Optional[Dict[str, Any]]:
    raw = request.get_json(silent=True)
    return raw if isinstance(raw, dict) else None
