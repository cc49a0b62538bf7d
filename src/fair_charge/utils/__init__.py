"""Utility modules for Fair Charge."""

from fair_charge.utils.performance import (
    get_cache_stats,
    get_confidence_language,
    get_confidence_level,
    get_status_description,
    format_minimal_response,
    format_full_response,
    CONFIDENCE_THRESHOLDS,
    CONFIDENCE_LANGUAGE,
    STATUS_DESCRIPTIONS,
)

__all__ = [
    "get_cache_stats",
    "get_confidence_language",
    "get_confidence_level",
    "get_status_description",
    "format_minimal_response",
    "format_full_response",
    "CONFIDENCE_THRESHOLDS",
    "CONFIDENCE_LANGUAGE",
    "STATUS_DESCRIPTIONS",
]
