"""Secure logging utilities.

Provides a logging setup that scrubs credentials (OAuth tokens, API keys,
service account private keys) from every record before it is emitted.
"""

import logging
import re
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class CredentialScrubbingFilter(logging.Filter):
    """Logging filter that redacts credentials from log messages."""

    # (pattern, replacement) pairs, applied in order
    PATTERNS: list[tuple[re.Pattern[str], str]] = [
        (
            re.compile(
                r'"(token|access_token|refresh_token|private_key|api_key|password|client_secret)"'
                r'\s*:\s*"[^"]*"',
                re.IGNORECASE,
            ),
            r'"\1": "[REDACTED]"',
        ),
        (re.compile(r"Authorization:\s*Bearer\s+\S+", re.IGNORECASE), "Authorization: [REDACTED]"),
        (
            re.compile(
                r"\b(token|access_token|refresh_token|api_key|password|client_secret)=[^\s&,]+",
                re.IGNORECASE,
            ),
            r"\1=[REDACTED]",
        ),
        (re.compile(r"\b[A-Za-z0-9+]{40,}={0,2}"), "[REDACTED_BASE64]"),
    ]

    @classmethod
    def scrub(cls, text: str) -> str:
        """Redact credentials from a string.

        Args:
            text: Text that may contain credentials

        Returns:
            Text with credentials replaced by redaction markers
        """
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        """Scrub the record message in place.

        Args:
            record: Log record to scrub

        Returns:
            Always True, records are never dropped
        """
        if isinstance(record.msg, str):
            record.msg = self.scrub(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self.scrub(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            else:
                record.args = tuple(
                    self.scrub(a) if isinstance(a, str) else a for a in record.args
                )
        return True


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    enable_credential_scrubbing: bool = True,
) -> None:
    """Configure root logging for gcelb.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path of a file to log to, in addition to stderr
        enable_credential_scrubbing: Attach CredentialScrubbingFilter to handlers
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Replace handlers installed by a previous call
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        if enable_credential_scrubbing:
            handler.addFilter(CredentialScrubbingFilter())
        root_logger.addHandler(handler)

    # googleapiclient is chatty at INFO
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger.

    Args:
        name: Logger name, usually __name__

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
