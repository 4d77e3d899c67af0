"""
Logging setup with a filter that keeps detected PII out of log output
"""

import logging
import logging.config
import threading

from .patterns import PatternDetector

_detector = None
# Detection logs at DEBUG; do not filter records emitted while filtering
_state = threading.local()


def _get_detector() -> PatternDetector:
    global _detector
    if _detector is None:
        _detector = PatternDetector()
    return _detector


def redact(value: str) -> str:
    """Mask every non-legal pattern match in *value*"""
    entities = [e for e in _get_detector().detect(value) if e.entity_type.should_anonymize]
    for entity in sorted(entities, key=lambda e: e.start, reverse=True):
        value = value[:entity.start] + "[REDACTED]" + value[entity.end:]
    return value


class PIISafeFilter(logging.Filter):
    def _sanitize(self, value: object) -> object:
        if not isinstance(value, str):
            return value
        return redact(value)

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(_state, "active", False):
            return True
        _state.active = True
        try:
            self._redact_record(record)
        finally:
            _state.active = False
        return True

    def _redact_record(self, record: logging.LogRecord):
        record.msg = self._sanitize(record.msg)

        if isinstance(record.args, tuple):
            record.args = tuple(self._sanitize(item) for item in record.args)
        elif isinstance(record.args, dict):
            record.args = {key: self._sanitize(value) for key, value in record.args.items()}


def setup_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "pii_safe": {
                    "()": "legal_anonymizer.logging_config.PIISafeFilter",
                }
            },
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["pii_safe"],
                    "stream": "ext://sys.stderr",
                }
            },
            "loggers": {
                "": {
                    "handlers": ["console"],
                    "level": level.upper(),
                },
            },
        }
    )
