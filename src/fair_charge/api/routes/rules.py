from flask import Blueprint, request, jsonify
from flasgger import swag_from

from fair_charge.api import state, dependencies
from fair_charge.errors import RuleNotFound
from fair_charge.schemas import ChargeType

rules_bp = Blueprint('rules', __name__)


@rules_bp.route("/api/rules", methods=["GET"])
@swag_from({
    'tags': ['rules'],
    'parameters': [{
        'name': 'category', 'in': 'query', 'required': False, 'type': 'string',
        'enum': [c.value for c in ChargeType],
    }],
    'responses': {200: {'description': 'Latest version of every rule'}}
})
def list_rules():
    unavailable = dependencies.require_pipeline()
    if unavailable:
        return unavailable
    category = request.args.get('category')
    if category and category not in {c.value for c in ChargeType}:
        return jsonify({"error": "unknown_category", "category": category}), 400
    stamp, rules = state.pipeline.store.snapshot()
    items = [r.model_dump(mode="json") for r in rules if not category or r.category.value == category]
    return jsonify({"version_stamp": stamp, "count": len(items), "rules": items})


@rules_bp.route("/api/rules/<rule_id>", methods=["GET"])
@swag_from({
    'tags': ['rules'],
    'parameters': [
        {'name': 'rule_id', 'in': 'path', 'required': True, 'type': 'string'},
        {'name': 'version', 'in': 'query', 'required': False, 'type': 'integer'},
    ],
    'responses': {200: {'description': 'Rule'}, 404: {'description': 'Not found'}}
})
def get_rule(rule_id):
    unavailable = dependencies.require_pipeline()
    if unavailable:
        return unavailable
    version = request.args.get('version', type=int)
    try:
        rule = state.pipeline.store.get(rule_id, version)
    except RuleNotFound as e:
        return jsonify({"error": "rule_not_found", "detail": str(e)}), 404
    return jsonify(rule.model_dump(mode="json"))


@rules_bp.route("/api/rules/<rule_id>/versions", methods=["GET"])
def rule_versions(rule_id):
    """Every stored version of a rule, oldest first."""
    unavailable = dependencies.require_pipeline()
    if unavailable:
        return unavailable
    try:
        versions = state.pipeline.store.history(rule_id)
    except RuleNotFound as e:
        return jsonify({"error": "rule_not_found", "detail": str(e)}), 404
    return jsonify({
        "rule_id": rule_id,
        "count": len(versions),
        "versions": [r.model_dump(mode="json") for r in versions],
    })
