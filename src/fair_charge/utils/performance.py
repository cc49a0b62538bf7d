"""Response helpers: confidence language, status descriptions and response formatting."""

import logging
from typing import Optional, Dict, Any, Callable

logger = logging.getLogger(__name__)


def get_cache_stats(cached_fn: Callable[..., Any]) -> Dict[str, Any]:
    """Get cache statistics from an lru_cache-wrapped function."""
    try:
        info = cached_fn.cache_info()  # type: ignore[attr-defined]
        return {
            "hits": info.hits,
            "misses": info.misses,
            "maxsize": info.maxsize or 0,
            "currsize": info.currsize
        }
    except AttributeError:
        return {"error": "Function is not cached"}


# =============================================================================
# Confidence Language Helper
# =============================================================================

# Verdict confidence is an integer percentage
CONFIDENCE_THRESHOLDS = {
    "very_high": 90,
    "high": 75,
    "moderate": 60,
    "low": 40,
    "very_low": 0
}

CONFIDENCE_LANGUAGE = {
    "very_high": {
        "level": "Very High",
        "description": "The bill details and the matched rule agree closely.",
        "recommendation": "You can rely on this finding when raising the issue with the vendor.",
    },
    "high": {
        "level": "High",
        "description": "The finding is well supported by the bill details and the matched rule.",
        "recommendation": "Check the amounts once against your bill before filing a complaint.",
    },
    "moderate": {
        "level": "Moderate",
        "description": "Some bill details were read with limited certainty or the rule match is partial.",
        "recommendation": "Verify the flagged fields against the original bill.",
    },
    "low": {
        "level": "Low",
        "description": "The bill details or the rule match are uncertain.",
        "recommendation": "Correct the flagged fields and analyse again before acting.",
    },
    "very_low": {
        "level": "Very Low",
        "description": "There is too little reliable information for a firm finding.",
        "recommendation": "Add the missing details (MRP, amount, offence) and analyse again.",
    }
}


def get_confidence_level(confidence: Optional[int]) -> str:
    """Map a 0-100 confidence to a categorical level."""
    if confidence is None:
        return "unknown"

    for level, threshold in CONFIDENCE_THRESHOLDS.items():
        if confidence >= threshold:
            return level
    return "very_low"


def get_confidence_language(confidence: Optional[int]) -> Dict[str, Any]:
    level = get_confidence_level(confidence)

    if level == "unknown":
        return {
            "level": "Unknown",
            "description": "Confidence score not available.",
            "recommendation": "Unable to assess how reliable this finding is.",
            "score": None,
        }

    base_info = CONFIDENCE_LANGUAGE.get(level, CONFIDENCE_LANGUAGE["very_low"])
    return {
        "level": base_info["level"],
        "description": base_info["description"],
        "recommendation": base_info["recommendation"],
        "score": confidence,
    }


# =============================================================================
# Status Description Helper
# =============================================================================

STATUS_DESCRIPTIONS: Dict[str, Dict[str, str]] = {
    "violation_detected": {
        "meaning": "The charge breaks at least one of the cited consumer-protection rules.",
        "next_steps": "Ask the vendor or issuing office for a refund or correction; if refused, "
                      "complain to the authority listed in the verdict.",
    },
    "legal": {
        "meaning": "The charge is within the limits set by the rules that were checked.",
        "next_steps": "No action is needed unless other facts about the charge were left out.",
    },
    "insufficient_info": {
        "meaning": "There is not enough information to decide whether the charge is lawful.",
        "next_steps": "Add the missing details and analyse again.",
    },
}


def get_status_description(status: str) -> Dict[str, str]:
    return STATUS_DESCRIPTIONS.get(status, STATUS_DESCRIPTIONS["insufficient_info"])


# =============================================================================
# Response Format Helpers
# =============================================================================

def format_minimal_response(verdict: Dict[str, Any]) -> Dict[str, Any]:
    """Status, title, confidence and citations only."""
    return {
        "status": verdict["status"],
        "title": verdict["title"],
        "confidence": verdict["confidence"],
        "citations": verdict["citations"],
        "disclaimer": verdict["disclaimer"],
    }


def format_full_response(verdict: Dict[str, Any]) -> Dict[str, Any]:
    """Serialized Verdict plus confidence language and status guidance."""
    response = dict(verdict)
    response["confidence_info"] = get_confidence_language(verdict.get("confidence"))
    response["status_info"] = get_status_description(verdict.get("status", ""))
    response["needs_review"] = bool(verdict.get("flagged_fields")) or verdict.get("status") == "insufficient_info"
    return response
