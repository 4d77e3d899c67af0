"""Tests for legal_anonymizer/anonymizer.py — the end-to-end pipeline."""
import pytest

from conftest import SCENARIO, FakeRecognizer
from legal_anonymizer import (
    AnonymizationSettings,
    Anonymizer,
    DetectionMode,
    EntityType,
    create_anonymizer,
)

SCENARIO_ANONYMIZED = (
    "[PERSON-A] filed a complaint under Article 6 GDPR on [DATE-1]. "
    "[PERSON-A] claimed that [ORGANIZATION-A] violated his privacy rights by "
    "sharing his email address [EMAIL-1] without consent."
)


# ---------------------------------------------------------------------------
# Single document
# ---------------------------------------------------------------------------

def test_scenario_without_recognizer(anonymizer):
    result = anonymizer.anonymize(SCENARIO)

    assert result.original_text == SCENARIO
    assert result.anonymized_text == SCENARIO_ANONYMIZED
    assert result.replacements == [
        ("John Smith", "[PERSON-A]"),
        ("2024-03-15", "[DATE-1]"),
        ("Mr. Smith", "[PERSON-A]"),
        ("Acme Corporation", "[ORGANIZATION-A]"),
        ("john.smith@example.com", "[EMAIL-1]"),
    ]
    assert len(result.warnings) == 1
    assert "recognizer" in result.warnings[0]


def test_scenario_pattern_only_has_no_warning(anonymizer, pattern_settings):
    result = anonymizer.anonymize(SCENARIO, pattern_settings)
    assert result.anonymized_text == SCENARIO_ANONYMIZED
    assert result.warnings == []


def test_entities_carry_canonical_and_replacement(anonymizer, pattern_settings):
    result = anonymizer.anonymize(SCENARIO, pattern_settings)
    persons = [e for e in result.entities if e.entity_type is EntityType.PERSON]
    assert [e.text for e in persons] == ["John Smith", "Mr. Smith"]
    assert {e.canonical for e in persons} == {"john smith"}
    assert all(e.replacement == "[PERSON-A]" for e in persons)
    assert [e.start for e in result.entities] == sorted(e.start for e in result.entities)


def test_empty_text(anonymizer):
    result = anonymizer.anonymize("")
    assert result.anonymized_text == ""
    assert result.entities == []


def test_empty_entity_types_leave_text_unchanged(anonymizer):
    settings = AnonymizationSettings(entity_types=[], mode=DetectionMode.PATTERN_ONLY)
    result = anonymizer.anonymize(SCENARIO, settings)
    assert result.anonymized_text == SCENARIO
    assert result.entities == []


def test_confidence_threshold_filters_loose_matches(anonymizer):
    text = "Reference 0612345678 noted"
    strict = anonymizer.anonymize(text, AnonymizationSettings(mode=DetectionMode.PATTERN_ONLY))
    assert strict.anonymized_text == text

    loose = anonymizer.anonymize(
        text, AnonymizationSettings(mode=DetectionMode.PATTERN_ONLY, confidence_threshold=0.5)
    )
    assert loose.anonymized_text == "Reference [PHONE-1] noted"


def test_legal_references_protect_overlapping_entities(anonymizer):
    text = "Under Act 21-ABC-2020 the claim failed."
    types = ["PERSON", "CASE"]

    preserved = anonymizer.anonymize(
        text, AnonymizationSettings(entity_types=types, mode=DetectionMode.PATTERN_ONLY)
    )
    assert preserved.anonymized_text == text

    unprotected = anonymizer.anonymize(text, AnonymizationSettings(
        entity_types=types, mode=DetectionMode.PATTERN_ONLY, preserve_legal_references=False
    ))
    assert unprotected.anonymized_text == "Under Act [CASE-1] the claim failed."


def test_independent_replacement(anonymizer):
    settings = AnonymizationSettings(consistent_replacement=False, mode=DetectionMode.PATTERN_ONLY)
    result = anonymizer.anonymize("John Doe met John Doe.", settings)
    assert result.anonymized_text == "[PERSON-A] met [PERSON-B]."


def test_idempotent_on_anonymized_output(anonymizer, pattern_settings):
    first = anonymizer.anonymize(SCENARIO, pattern_settings)
    second = anonymizer.anonymize(first.anonymized_text, pattern_settings)
    assert second.entities == []
    assert second.anonymized_text == first.anonymized_text


def test_deterministic_across_instances(pattern_settings):
    first = Anonymizer().anonymize(SCENARIO, pattern_settings)
    second = Anonymizer().anonymize(SCENARIO, pattern_settings)
    assert first.to_dict() == second.to_dict()


# ---------------------------------------------------------------------------
# Session consistency
# ---------------------------------------------------------------------------

def test_batch_shares_tokens():
    results = Anonymizer().anonymize_batch(
        ["John Doe lives in Amsterdam.", "Mr. John Doe works for Acme Corp."],
        AnonymizationSettings(mode=DetectionMode.PATTERN_ONLY),
    )
    assert results[0].anonymized_text == "[PERSON-A] lives in Amsterdam."
    assert results[1].anonymized_text == "[PERSON-A] works for [ORGANIZATION-A]"


def test_short_form_in_later_document_reuses_token(anonymizer, pattern_settings):
    results = anonymizer.anonymize_batch(["John Smith called.", "Later Mr. Smith wrote."],
                                         pattern_settings)
    assert results[0].anonymized_text == "[PERSON-A] called."
    assert results[1].anonymized_text == "Later [PERSON-A] wrote."


def test_tokens_persist_across_calls(anonymizer, pattern_settings):
    anonymizer.anonymize("John Doe signed.", pattern_settings)
    result = anonymizer.anonymize("Jane Roe and John Doe signed.", pattern_settings)
    assert result.anonymized_text == "[PERSON-B] and [PERSON-A] signed."


def test_date_range_is_anonymized(anonymizer, pattern_settings):
    result = anonymizer.anonymize("Employed 01.02.2023 - 05.06.2024 at the firm.", pattern_settings)
    assert result.anonymized_text == "Employed [DATE-1] - [DATE-2] at the firm."


def test_surname_only_mention_does_not_merge_later_people(anonymizer, pattern_settings):
    assert anonymizer.anonymize("Mr. Doe signed.", pattern_settings).anonymized_text == "[PERSON-A] signed."
    result = anonymizer.anonymize("Jane Doe and John Doe met.", pattern_settings)
    assert result.anonymized_text == "[PERSON-B] and [PERSON-C] met."


def test_batch_tokens_follow_input_order(pattern_settings):
    names = ["Alice Walker", "Bruno Mars", "Carla Diaz", "Derek Jones", "Elena Petrova", "Frank Ocean"]
    anonymizer = Anonymizer(max_workers=4)
    results = anonymizer.anonymize_batch([f"{name} signed." for name in names], pattern_settings)
    assert [r.anonymized_text for r in results] == [
        f"[PERSON-{letter}] signed." for letter in "ABCDEF"
    ]


def test_clear_erases_mappings(anonymizer, pattern_settings):
    anonymizer.anonymize("John Doe signed.", pattern_settings)
    assert anonymizer.anonymize("Jane Roe signed.", pattern_settings).anonymized_text == "[PERSON-B] signed."

    anonymizer.clear()
    assert anonymizer.get_statistics().total_entities == 0
    assert anonymizer.anonymize("Jane Roe signed.", pattern_settings).anonymized_text == "[PERSON-A] signed."


# ---------------------------------------------------------------------------
# Recognizer collaboration
# ---------------------------------------------------------------------------

def test_hybrid_adds_recognizer_names():
    anonymizer = Anonymizer(recognizer=FakeRecognizer({"Anna": EntityType.PERSON}))
    result = anonymizer.anonymize("Anna signed the lease.")
    assert result.anonymized_text == "[PERSON-A] signed the lease."
    assert result.entities[0].source == "recognizer"
    assert result.warnings == []


def test_locations_use_numeric_tokens():
    anonymizer = Anonymizer(recognizer=FakeRecognizer({"Rotterdam": EntityType.LOCATION}, 0.88))
    result = anonymizer.anonymize("She moved to Rotterdam in 2019.")
    assert result.anonymized_text == "She moved to [LOCATION-1] in 2019."


def test_recognizer_failure_degrades_to_patterns(unavailable_recognizer):
    anonymizer = Anonymizer(recognizer=unavailable_recognizer)
    result = anonymizer.anonymize(SCENARIO)
    assert result.anonymized_text == SCENARIO_ANONYMIZED
    assert len(result.warnings) == 1


def test_recognizer_only_skips_patterns():
    anonymizer = Anonymizer(recognizer=FakeRecognizer({"Anna": EntityType.PERSON}))
    settings = AnonymizationSettings(mode=DetectionMode.RECOGNIZER_ONLY)
    result = anonymizer.anonymize("Anna met Bob at bob@example.com", settings)
    assert result.anonymized_text == "[PERSON-A] met Bob at bob@example.com"


def test_recognizer_only_without_recognizer_returns_text_with_warning(anonymizer):
    settings = AnonymizationSettings(mode=DetectionMode.RECOGNIZER_ONLY)
    result = anonymizer.anonymize(SCENARIO, settings)
    assert result.anonymized_text == SCENARIO
    assert len(result.warnings) == 1


def test_recognizer_structured_types_are_ignored():
    anonymizer = Anonymizer(recognizer=FakeRecognizer({"Anna": EntityType.EMAIL}))
    result = anonymizer.anonymize("Anna signed the lease.")
    assert result.anonymized_text == "Anna signed the lease."


def test_unknown_recognizer_label_is_skipped():
    anonymizer = Anonymizer(recognizer=FakeRecognizer({"Anna": "MISC"}))
    result = anonymizer.anonymize("Anna signed. john@x.com")
    assert result.anonymized_text == "Anna signed. [EMAIL-1]"
    assert result.warnings == []


class MalformedRecognizer:
    def detect(self, text, language="en"):
        return [(0, 4)]


def test_malformed_recognizer_output_degrades_to_patterns():
    result = Anonymizer(recognizer=MalformedRecognizer()).anonymize("Anna signed. john@x.com")
    assert result.anonymized_text == "Anna signed. [EMAIL-1]"
    assert len(result.warnings) == 1


def test_pattern_date_beats_recognizer_location():
    anonymizer = Anonymizer(recognizer=FakeRecognizer({"March": EntityType.LOCATION}, 0.99))
    result = anonymizer.anonymize("Signed on 15 March 2024.")
    assert result.anonymized_text == "Signed on [DATE-1]."


# ---------------------------------------------------------------------------
# Detection only, statistics, subscribers
# ---------------------------------------------------------------------------

def test_detect_only_reports_legal_references(anonymizer):
    entities = anonymizer.detect_only(SCENARIO, mode=DetectionMode.PATTERN_ONLY)
    by_text = {e.text: e for e in entities}

    assert by_text["Article 6 GDPR"].entity_type is EntityType.LAW
    assert by_text["Mr. Smith"].canonical == "john smith"
    assert all(e.replacement is None for e in entities)
    assert anonymizer.get_statistics().total_entities == 0
    assert len(anonymizer.replacement_map) == 0


def test_statistics_accumulate(anonymizer, pattern_settings):
    anonymizer.anonymize(SCENARIO, pattern_settings)
    stats = anonymizer.get_statistics()
    assert stats.total_entities == 5
    assert stats.entity_counts == {
        EntityType.PERSON: 2, EntityType.DATE: 1,
        EntityType.ORGANIZATION: 1, EntityType.EMAIL: 1,
    }

    anonymizer.anonymize("Write to a@b.com", pattern_settings)
    assert anonymizer.get_statistics().entity_counts[EntityType.EMAIL] == 2


def test_subscribers_receive_summaries(anonymizer, pattern_settings):
    summaries = []

    def broken(summary):
        raise RuntimeError("listener failure")

    anonymizer.subscribe(broken)
    anonymizer.subscribe(summaries.append)
    anonymizer.anonymize(SCENARIO, pattern_settings)
    anonymizer.anonymize_batch([SCENARIO], pattern_settings)

    assert [s.operation_type for s in summaries] == ["anonymize", "anonymize_batch"]
    assert summaries[0].entity_count == 5
    assert summaries[0].entity_breakdown == {"PERSON": 2, "DATE": 1, "ORGANIZATION": 1, "EMAIL": 1}
    assert summaries[0].processing_time >= 0


def test_static_helpers():
    assert Anonymizer.get_default_settings() == AnonymizationSettings()
    types = Anonymizer.get_entity_types()
    assert len(types) == 11
    assert "TECHNICAL_IDENTIFIER" in types
    assert "LAW" in types


def test_create_anonymizer_without_recognizer():
    anonymizer = create_anonymizer(use_recognizer=False, threshold=0.5)
    assert anonymizer.recognizer is None


@pytest.mark.parametrize("mode", list(DetectionMode))
def test_every_mode_keeps_offsets_valid(mode):
    anonymizer = Anonymizer(recognizer=FakeRecognizer({"John Smith": EntityType.PERSON}))
    result = anonymizer.anonymize(SCENARIO, AnonymizationSettings(mode=mode))
    for entity in result.entities:
        assert SCENARIO[entity.start:entity.end] == entity.text
