import logging
import time
from typing import Any, Dict, List

from flask import Blueprint, jsonify
from flasgger import swag_from
from pydantic import ValidationError

from fair_charge import config
from fair_charge.api import state, dependencies, models
from fair_charge.api.extensions import limiter
from fair_charge.errors import InvalidInput
from fair_charge.schemas import Verdict
from fair_charge.utils.performance import format_minimal_response, format_full_response

logger = logging.getLogger(__name__)
analysis_bp = Blueprint('analysis', __name__)

_DATA_SCHEMA = {
    'type': 'object',
    'properties': {
        'chargeType': {'type': 'string', 'enum': ['mrp', 'service_charge', 'challan', 'other']},
        'amount': {'type': 'number', 'example': 200},
        'vendor': {'type': 'string', 'example': 'Cafe X'},
        'date': {'type': 'string', 'format': 'date'},
        'products': {
            'type': 'array',
            'items': {
                'type': 'object',
                'properties': {
                    'name': {'type': 'string', 'example': 'Soap'},
                    'price': {'type': 'number', 'example': 50},
                    'mrp': {'type': 'number', 'example': 45},
                },
            },
        },
        'confidence': {'type': 'object', 'additionalProperties': {'type': 'number'}},
    },
    'required': ['chargeType'],
}


def render_verdict(verdict: Verdict, response_format: str) -> Dict[str, Any]:
    body = verdict.model_dump(mode="json")
    if response_format == 'minimal':
        return format_minimal_response(body)
    if response_format == 'full':
        return format_full_response(body)
    return body


def _record(verdict: Verdict) -> None:
    state.update_verdict_stats(
        verdict.status.value,
        flagged=bool(verdict.flagged_fields),
        retrieval_mode=verdict.retrieval_mode,
    )


@analysis_bp.route("/api/analyze", methods=["POST"])
@limiter.limit("30/minute")
@swag_from({
    'tags': ['analyze'],
    'consumes': ['application/json'],
    'parameters': [{
        'name': 'body', 'in': 'body', 'required': True,
        'schema': {
            'type': 'object',
            'properties': {
                'data': _DATA_SCHEMA,
                'query': {'type': 'string', 'example': 'service charge is mandatory'},
                'language': {'type': 'string', 'enum': list(config.SUPPORTED_LANGUAGES)},
                'format': {'type': 'string', 'enum': list(models.RESPONSE_FORMATS)},
            },
            'required': ['data'],
        }
    }],
    'responses': {
        200: {'description': 'Verdict'},
        400: {'description': 'Invalid input'},
        503: {'description': 'Pipeline not loaded'},
    }
})
def analyze_charge():
    unavailable = dependencies.require_pipeline()
    if unavailable:
        return unavailable
    raw = dependencies.json_object_body()
    if raw is None:
        return jsonify({"error": "Expected application/json object body"}), 400
    try:
        parsed = models.AnalyzeRequest(**raw)
    except ValidationError as ve:
        return jsonify({"error": "validation_failed", "details": ve.errors(include_url=False, include_context=False)}), 400

    try:
        verdict = state.pipeline.analyze(parsed.data, query=parsed.query, language=parsed.language)
    except InvalidInput as e:
        return jsonify({"error": "validation_failed", "message": str(e), "details": e.details}), 400

    _record(verdict)
    return jsonify(render_verdict(verdict, parsed.format))


# =============================================================================
# Batch Analysis Endpoint
# =============================================================================

@analysis_bp.route("/api/analyze/batch", methods=["POST"])
@limiter.limit("10/minute")
@swag_from({
    'tags': ['analyze'],
    'consumes': ['application/json'],
    'parameters': [{
        'name': 'body', 'in': 'body', 'required': True,
        'schema': {
            'type': 'object',
            'properties': {
                'items': {
                    'type': 'array',
                    'items': {'type': 'object'},
                    'description': 'Array of {data, query?, language?} objects'
                },
                'format': {
                    'type': 'string',
                    'enum': list(models.RESPONSE_FORMATS),
                    'description': 'Response format level'
                }
            },
            'required': ['items']
        }
    }],
    'responses': {
        200: {'description': 'Batch analysis results'},
        400: {'description': 'Invalid request'},
        413: {'description': 'Too many items in batch'}
    }
})
def analyze_batch():
    """
    Analyze several charges in one request.

    Each item is validated on its own; invalid items are reported under
    ``errors`` with their index and do not fail the batch.
    """
    unavailable = dependencies.require_pipeline()
    if unavailable:
        return unavailable
    raw = dependencies.json_object_body()
    if raw is None:
        return jsonify({"error": "Expected JSON object with 'items' array"}), 400

    items = raw.get('items', [])
    if not isinstance(items, list):
        return jsonify({"error": "'items' must be an array"}), 400
    if len(items) > config.BATCH_SIZE_LIMIT:
        return jsonify({
            "error": f"Batch size exceeds limit of {config.BATCH_SIZE_LIMIT}",
            "submitted": len(items),
            "limit": config.BATCH_SIZE_LIMIT
        }), 413
    try:
        parsed = models.BatchAnalyzeRequest(**raw)
    except ValidationError as ve:
        return jsonify({"error": "validation_failed", "details": ve.errors(include_url=False, include_context=False)}), 400

    start_time = time.perf_counter()
    results: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []

    for idx, item in enumerate(parsed.items):
        try:
            req = models.AnalyzeRequest(**item)
            verdict = state.pipeline.analyze(req.data, query=req.query, language=req.language)
        except ValidationError as ve:
            errors.append({"index": idx, "error": "validation_failed", "details": ve.errors(include_url=False, include_context=False)})
            continue
        except InvalidInput as e:
            errors.append({"index": idx, "error": "validation_failed", "message": str(e), "details": e.details})
            continue
        _record(verdict)
        results.append({"index": idx, **render_verdict(verdict, parsed.format)})

    elapsed_ms = (time.perf_counter() - start_time) * 1000
    return jsonify({
        "results": results,
        "errors": errors,
        "count": len(results),
        "error_count": len(errors),
        "timing_ms": round(elapsed_ms, 2),
        "avg_ms_per_item": round(elapsed_ms / len(items), 2) if items else 0
    })
