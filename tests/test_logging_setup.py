# ruff: noqa: E402, I001
import io
import logging
import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(_ROOT / "packages"), str(_ROOT)] if p not in sys.path]

import statement_pipeline.logging_setup as logging_setup
from statement_pipeline.logging_setup import (
    configure_logging,
    get_logger,
    mask_account_numbers,
    resolve_level,
)


@pytest.fixture
def fresh_pkg_logger(monkeypatch: pytest.MonkeyPatch):
    """Let ``configure_logging`` run again and restore the package logger afterwards."""

    logger = logging.getLogger("statement_pipeline")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    monkeypatch.setattr(logging_setup, "_CONFIGURED", False)
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


@pytest.mark.parametrize(
    ("level", "env", "expected"),
    [
        (logging.WARNING, {}, logging.WARNING),
        (" debug ", {}, logging.DEBUG),
        ("15", {}, 15),
        ("chatty", {"STATEMENT_PIPELINE_LOG_LEVEL": "DEBUG"}, logging.INFO),
        (None, {"STATEMENT_PIPELINE_LOG_LEVEL": "error"}, logging.ERROR),
        (None, {"STATEMENT_PIPELINE_LOG_LEVEL": "verbose"}, logging.INFO),
        (None, {"STATEMENT_PIPELINE_LOG_LEVEL": ""}, logging.INFO),
        (None, {}, logging.INFO),
    ],
)
def test_resolve_level(level, env, expected: int) -> None:
    assert resolve_level(level, env) == expected


def test_unknown_lowercase_env_level_falls_back_to_info(
    monkeypatch: pytest.MonkeyPatch, fresh_pkg_logger: logging.Logger
) -> None:
    monkeypatch.setenv("STATEMENT_PIPELINE_LOG_LEVEL", "verbose")

    configure_logging(stream=io.StringIO())

    assert fresh_pkg_logger.level == logging.INFO


def test_configure_logging_masks_account_numbers(fresh_pkg_logger: logging.Logger) -> None:
    buf = io.StringIO()
    configure_logging("DEBUG", fmt="%(levelname)s %(message)s", stream=buf)
    configure_logging("ERROR", stream=io.StringIO())  # second call is a no-op

    get_logger("statement_pipeline.segmentation").info("segment:done account=%s", "0123456789")

    assert buf.getvalue() == "INFO segment:done account=******6789\n"
    assert fresh_pkg_logger.propagate is False
    assert len(fresh_pkg_logger.handlers) == 1


def test_mask_account_numbers_leaves_other_digits_alone() -> None:
    assert mask_account_numbers("acct 0123456789 ref 20240115123") == (
        "acct ******6789 ref 20240115123"
    )
    assert mask_account_numbers("amount=5000.00 chunk=12") == "amount=5000.00 chunk=12"
