"""Tests for legal_anonymizer/logging_config.py — PII-safe log records."""
import logging

from legal_anonymizer.logging_config import PIISafeFilter, redact


def _record(msg, args=()):
    return logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)


def test_redact_masks_pii_but_not_legal_references():
    assert redact("Mail john.doe@example.com under Article 6 GDPR") == (
        "Mail [REDACTED] under Article 6 GDPR"
    )


def test_filter_redacts_message():
    record = _record("Contact john.doe@example.com")
    assert PIISafeFilter().filter(record) is True
    assert record.getMessage() == "Contact [REDACTED]"


def test_filter_redacts_args():
    record = _record("Caller %s on %s", ("555-123-4567", "2024-03-15"))
    PIISafeFilter().filter(record)
    assert record.getMessage() == "Caller [REDACTED] on [REDACTED]"


def test_filter_leaves_non_strings():
    record = _record("%d entities", (3,))
    PIISafeFilter().filter(record)
    assert record.getMessage() == "3 entities"


def test_filter_on_logger(caplog):
    logger = logging.getLogger("legal_anonymizer.tests")
    logger.setLevel(logging.INFO)
    logger.filters = []
    logger.addFilter(PIISafeFilter())

    with caplog.at_level(logging.INFO, logger="legal_anonymizer.tests"):
        logger.info("Processing %s", "jane@doe.org")
    assert "jane@doe.org" not in caplog.text
    assert "[REDACTED]" in caplog.text
