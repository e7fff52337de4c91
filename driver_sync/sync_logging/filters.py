"""Log filters for PII masking and correlation ID injection."""

import logging
import re


class PIIFilter(logging.Filter):
    """Masks PII (emails, phone numbers) in log messages.

    Order payloads carry customer phone and WhatsApp numbers, and request
    logging includes them, so both the message and its arguments are masked.
    """

    EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+")
    PHONE_PATTERN = re.compile(r"(?:\+\d{1,3}[-.\s]?)?\d{3}[-.\s]?\d{3}[-.\s]?\d{4}")

    def _mask(self, text: str) -> str:
        if "@" in text:
            text = self.EMAIL_PATTERN.sub("[EMAIL]", text)
        if any(c.isdigit() for c in text):
            text = self.PHONE_PATTERN.sub("[PHONE]", text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._mask(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(
                self._mask(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True


class DefaultCorrelationFilter(logging.Filter):
    """Adds default correlation_id if not present."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True
