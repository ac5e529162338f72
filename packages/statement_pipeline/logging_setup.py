"""Logging for the ``statement_pipeline`` package.

Entrypoints (the CLI, a host web app) call :func:`configure_logging` once;
pipeline modules only ever call ``get_logger("statement_pipeline.<module>")``.
Until configured, the package root logger carries a ``NullHandler`` so library
use stays silent.

Statement text routinely contains 10-digit account numbers (NUBAN). The
handler installed here masks them down to their last four digits, so a stray
``%s`` of a narration or error message never writes a full account number to
the log.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Mapping
from typing import IO

_PKG_LOGGER_NAME = "statement_pipeline"
_LEVEL_ENV = "STATEMENT_PIPELINE_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False

_ACCOUNT_NUMBER_RE = re.compile(r"(?<!\d)\d{6}(\d{4})(?!\d)")


def _level_from_name(raw: str) -> int | None:
    name = raw.strip().upper()
    if name.isdigit():
        return int(name)
    return logging.getLevelNamesMapping().get(name)


def resolve_level(level: int | str | None = None, env: Mapping[str, str] | None = None) -> int:
    """Resolve a level from an explicit value, else ``STATEMENT_PIPELINE_LOG_LEVEL``.

    Unknown names fall back to ``INFO``; the environment is consulted only when
    ``level`` is ``None``.
    """

    if isinstance(level, int):
        return level
    if isinstance(level, str):
        parsed = _level_from_name(level)
        return parsed if parsed is not None else logging.INFO
    raw = (os.environ if env is None else env).get(_LEVEL_ENV)
    if raw:
        parsed = _level_from_name(raw)
        if parsed is not None:
            return parsed
    return logging.INFO


def mask_account_numbers(text: str) -> str:
    return _ACCOUNT_NUMBER_RE.sub(lambda m: "******" + m.group(1), text)


class AccountMaskingFormatter(logging.Formatter):
    """``logging.Formatter`` that masks account numbers in the rendered line."""

    def format(self, record: logging.LogRecord) -> str:
        return mask_account_numbers(super().format(record))


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach one masking ``StreamHandler`` to the package root logger, once."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(AccountMaskingFormatter(fmt or _DEFAULT_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
