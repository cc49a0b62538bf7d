from fair_charge.utils import (
    format_full_response, format_minimal_response, get_confidence_level, get_status_description,
)
from fair_charge.compose.composer import insufficient_verdict


def test_confidence_levels():
    assert get_confidence_level(95) == "very_high"
    assert get_confidence_level(None) == "unknown"
    assert get_confidence_level(0) == "very_low"


def test_status_description_unknown_status():
    assert get_status_description("violation_detected")["meaning"]
    assert get_status_description("bogus") == get_status_description("insufficient_info")


def test_response_formats():
    body = insufficient_verdict("Add the printed MRP.").model_dump(mode="json")
    minimal = format_minimal_response(body)
    assert set(minimal) == {"status", "title", "confidence", "citations", "disclaimer"}
    full = format_full_response(body)
    assert full["needs_review"] is True
    assert full["status_info"] == get_status_description("insufficient_info")
    assert full["explanation"] == "Add the printed MRP."
