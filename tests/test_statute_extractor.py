import pytest

from fair_charge.parsing.statute_extractor import (
    authority_matches, extract_acts, extract_amounts, extract_authorities, extract_sections, extract_statutes,
    law_year, normalize_law, normalize_section,
)


def test_sections_are_normalized():
    text = "This breaks Section 18(1), Sec. 194D and u/s 185 as well as Rule 6."
    assert extract_sections(text) == ["18(1)", "194d", "185", "6"]
    assert normalize_section("Guideline 3") == "3"
    assert normalize_section("18 (1)") == "18(1)"


def test_act_names_and_years():
    text = "under the Legal Metrology (Packaged Commodities) Rules, 2011 and the Motor Vehicles Act"
    acts = extract_acts(text)
    names = {(a["name"], a["year"]) for a in acts}
    assert ("legal metrology (packaged commodities) rules", "2011") in names
    assert ("motor vehicles act", None) in names


def test_act_aliases():
    acts = extract_acts("Fined under the MV Act for overspeeding")
    assert acts[0]["name"] == "motor vehicles act"


def test_single_word_act_is_ignored():
    assert extract_acts("The Act says nothing here") == []


def test_amounts_in_paise():
    assert extract_amounts("Pay Rs 1,000 or ₹500.50 or INR 25,000") == {100000, 50050, 2500000}
    assert extract_amounts("no money here") == set()


def test_law_helpers():
    assert normalize_law("the Legal Metrology Act, 2009") == "legal metrology act"
    assert law_year("Legal Metrology Act, 2009") == "2009"
    assert law_year("CCPA Guidelines") is None


def test_statutes_pair_section_with_following_act():
    refs = extract_statutes("Section 18(1) of the Legal Metrology Act, 2009 applies.")
    assert refs[0]["section"] == "18(1)"
    assert refs[0]["act"] == "legal metrology act"


def test_amounts_written_after_the_number():
    assert extract_amounts("a fine of 500 rupees, or 1,000/- at most") == {50000, 100000}
    assert extract_amounts("पूरे 200 रुपये") == {20000}


def test_authority_names_are_extracted():
    text = ("File a complaint with the Food Safety and Standards Authority of India or the "
            "Ministry of Consumer Affairs. Traffic Police / Regional Transport Office.")
    assert extract_authorities(text) == [
        "food safety and standards authority of india",
        "ministry of consumer affairs",
        "traffic police",
        "regional transport office",
    ]
    assert extract_authorities("the board was on board") == []


@pytest.mark.parametrize("name, expected", [
    ("regional transport office", True),
    ("contact regional transport office", True),
    ("traffic police", True),
    ("police", True),
    ("state police", False),
    ("ministry of road transport", False),
])
def test_authority_matches_known_names(name, expected):
    assert authority_matches(name, ["Traffic Police / Regional Transport Office"]) is expected
