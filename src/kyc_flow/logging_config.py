"""
Logging Configuration

Console/file logging for the kyc_flow logger tree. The library only creates
module loggers; applications and the CLI call setup_logging().

Log lines can carry backend payloads, so every handler installed here masks
session tokens and the configured API key before anything is written.
"""

import logging
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

MASK = "***"

# token=abc, "token": "abc", 'token': 'abc' (also sessionToken / session_token)
_TOKEN_PATTERN = re.compile(
    r"""(?P<key>["']?(?:session_?[tT]oken|token)["']?\s*[:=]\s*["']?)(?P<value>[^\s"'&,}]+)"""
)


def redact(text: str, secrets: Iterable[str] = ()) -> str:
    """Mask token values and any of the given literal secrets"""
    text = _TOKEN_PATTERN.sub(lambda m: f"{m.group('key')}{MASK}", text)
    for secret in secrets:
        if secret:
            text = text.replace(secret, MASK)
    return text


class KYCFormatter(logging.Formatter):
    """[TIME] LEVEL [logger] message, colourised on a terminal, secrets masked"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True, secrets: Iterable[str] = ()):
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()
        self.secrets = tuple(s for s in secrets if s)

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        level = record.levelname
        if self.use_colors:
            level = f"{self.COLORS.get(level, '')}{level}{self.RESET}"

        line = f"[{timestamp}] {level:8} [{record.name}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return redact(line, self.secrets)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    use_colors: bool = True,
    secrets: Iterable[str] = (),
) -> logging.Logger:
    """
    Configure the kyc_flow logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for log output
        use_colors: Enable colored console output
        secrets: Literal values (API key, session token) to mask in every line
    """
    secrets = tuple(secrets)
    logger = logging.getLogger("kyc_flow")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    # stdout carries command output
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(KYCFormatter(use_colors=use_colors, secrets=secrets))
    logger.addHandler(console)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(KYCFormatter(use_colors=False, secrets=secrets))
        logger.addHandler(file_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger.debug("Logging configured")
    return logger
