from __future__ import annotations

from clarify.tagging import TAXONOMY, detect_tags


def test_keywords_map_to_tags_in_taxonomy_order():
    loop = {
        "fear": "Vulnerable to REJECTION if the work is not perfect",
        "mechanisms": ["people pleasing"],
    }
    spiess = {"emotions": ["anxious"]}
    assert detect_tags(loop, spiess) == [
        "fear_of_rejection",
        "perfectionism",
        "people_pleasing",
        "vulnerability_avoidance",
    ]


def test_field_names_count_as_text():
    assert detect_tags({}, {"microTest": {}}) == ["attention_testing"]


def test_no_keywords_no_tags():
    assert detect_tags({"trigger": "rain"}, {"needs": ["safety"]}) == []


def test_taxonomy_has_eight_tags():
    assert len(TAXONOMY) == 8
    assert len(set(TAXONOMY)) == 8


def test_repeated_keywords_yield_each_tag_once():
    loop = {"fear": "rejection, rejection and more rejection", "mechanisms": ["perfectionism", "perfectionism"]}
    tags = detect_tags(loop, {})
    assert tags.count("fear_of_rejection") == 1
    assert tags.count("perfectionism") == 1
    assert set(tags) == {"fear_of_rejection", "perfectionism"}
