"""Runtime settings for the statement pipeline.

All tunables that shape pipeline behavior live here rather than as scattered
module constants, so a deployment can adjust them through the environment.
``PipelineSettings.from_env()`` is the only place that reads ``os.environ``;
pipeline stages receive the resolved values explicitly.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_MODEL = "gpt-5"


def _env_int(env: Mapping[str, str], key: str, default: int, *, minimum: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


def _env_float(env: Mapping[str, str], key: str, default: float, *, minimum: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{key} must be a number, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    """Resolved pipeline tunables.

    Attributes
    ----------
    model:
        Responses API model used by the segmenter.
    look_ahead_rows:
        How many rows after a transaction the normalizer inspects for fee rows.
    unusual_amount_multiple:
        A row is an outlier when its amount exceeds this multiple of the batch
        median.
    duplicate_similarity:
        Minimum ``rapidfuzz`` ratio (0-100) for two same-date, same-amount rows
        to be considered near-duplicates.
    max_chunk_chars / max_chunks:
        Request size limit for the language model: text is split into at most
        ``max_chunks`` line-bounded chunks of ``max_chunk_chars`` characters.
    llm_max_attempts:
        Attempts per chunk for retryable (429/5xx) model errors.
    max_import_batch:
        Upper bound on rows accepted by one bulk import.
    """

    model: str = DEFAULT_MODEL
    look_ahead_rows: int = 3
    unusual_amount_multiple: float = 10.0
    duplicate_similarity: float = 90.0
    max_chunk_chars: int = 24_000
    max_chunks: int = 8
    llm_max_attempts: int = 3
    max_import_batch: int = 1000

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> PipelineSettings:
        """Build settings from environment variables, falling back to defaults.

        Raises ``ValueError`` for values that are present but malformed.
        """

        e = os.environ if env is None else env
        model = (e.get("OPENAI_MODEL") or "").strip() or DEFAULT_MODEL
        return cls(
            model=model,
            look_ahead_rows=_env_int(e, "SP_LOOK_AHEAD_ROWS", 3, minimum=0),
            unusual_amount_multiple=_env_float(
                e, "SP_UNUSUAL_AMOUNT_MULTIPLE", 10.0, minimum=1.0
            ),
            duplicate_similarity=_env_float(e, "SP_DUPLICATE_SIMILARITY", 90.0, minimum=0.0),
            max_chunk_chars=_env_int(e, "SP_MAX_CHUNK_CHARS", 24_000, minimum=200),
            max_chunks=_env_int(e, "SP_MAX_CHUNKS", 8, minimum=1),
            llm_max_attempts=_env_int(e, "SP_LLM_MAX_ATTEMPTS", 3, minimum=1),
            max_import_batch=_env_int(e, "SP_MAX_IMPORT_BATCH", 1000, minimum=1),
        )
