"""Test helpers to stub the OpenAI Responses client used by segmentation.py.

Two ways to drive the stub:

- a ``script``: a list consumed one entry per ``responses.create`` call. A
  mapping is returned as JSON ``output_text``, a string verbatim, and an
  exception instance is raised.
- a ``respond`` callable receiving the call kwargs and returning one of the
  same shapes. :func:`echo_canonical_rows` is a ready-made responder that
  reads the normalizer's ``KEY: value | ...`` rows back out of the prompt.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from statement_pipeline.dialects import FEE_FIELD_LABELS
from statement_pipeline.prompting import BEGIN_MARKER, END_MARKER

type StubReply = Mapping[str, Any] | str | BaseException


class APIStatusErrorStub(Exception):
    """Carries ``status_code`` like ``openai.APIStatusError`` does."""

    def __init__(self, status_code: int, message: str = "stubbed API error") -> None:
        super().__init__(message)
        self.status_code = status_code


class _Resp:
    def __init__(self, output_text: str) -> None:
        self.output_text = output_text


class OpenAIStub:
    """Minimal stub matching the ``openai.OpenAI`` shape used by the segmenter.

    ``calls`` holds each call's kwargs for lightweight assertions.
    """

    def __init__(
        self,
        script: Sequence[StubReply] | None = None,
        *,
        respond: Callable[[dict[str, Any]], StubReply] | None = None,
    ) -> None:
        if (script is None) == (respond is None):
            raise ValueError("pass exactly one of script or respond")
        self._script = list(script or [])
        self._respond = respond
        self.calls: list[dict[str, Any]] = []

        class _Responses:
            def __init__(self, outer: OpenAIStub) -> None:
                self._outer = outer

            def create(self, **kwargs: Any) -> _Resp:
                return self._outer._create(kwargs)

        self.responses = _Responses(self)

    def _create(self, kwargs: dict[str, Any]) -> _Resp:
        self.calls.append(kwargs)
        if self._respond is not None:
            reply = self._respond(kwargs)
        else:
            if not self._script:
                raise AssertionError("OpenAIStub: no scripted reply left")
            reply = self._script.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, str):
            return _Resp(reply)
        return _Resp(json.dumps(reply))


def statement_text_from_call(kwargs: Mapping[str, Any]) -> str:
    content = kwargs["input"]
    b = content.find(BEGIN_MARKER + "\n")
    e = content.rfind("\n" + END_MARKER)
    if b == -1 or e == -1 or e < b:
        raise AssertionError("segment: user content missing statement text block")
    return content[b + len(BEGIN_MARKER) + 1 : e]


_LABEL_TO_FIELD = {label: name for name, label in FEE_FIELD_LABELS.items()}


def _row_from_canonical(line: str) -> dict[str, Any] | None:
    if not line.startswith("DATE:"):
        return None
    fields: dict[str, str] = {}
    for part in line.split(" | "):
        key, _, value = part.partition(":")
        fields[key.strip().upper()] = value.strip()
    if "AMOUNT" not in fields:
        return None
    item: dict[str, Any] = {
        "date": fields["DATE"],
        "description": fields.get("DESC", ""),
        "amount": float(fields["AMOUNT"]),
        "type": fields.get("TYPE", "DEBIT").lower(),
        "balance": float(fields["BALANCE"]) if "BALANCE" in fields else None,
        "category": None,
        "fee_note": fields.get("FEE NOTE"),
    }
    for label, name in _LABEL_TO_FIELD.items():
        item[name] = float(fields[label]) if label in fields else None
    return item


def echo_canonical_rows(
    bank_name: str = "Unknown Bank", account_number: str | None = None
) -> Callable[[dict[str, Any]], StubReply]:
    """Responder returning one transaction per canonical row in the prompt."""

    def _respond(kwargs: dict[str, Any]) -> StubReply:
        text = statement_text_from_call(kwargs)
        rows = [r for r in (_row_from_canonical(ln.strip()) for ln in text.splitlines()) if r]
        return {
            "bank_name": bank_name,
            "account_number": account_number,
            "period": None,
            "transactions": rows,
        }

    return _respond


def statement_payload(
    transactions: Sequence[Mapping[str, Any]],
    *,
    bank_name: str = "Test Bank",
    account_number: str | None = "0123456789",
    period: Mapping[str, str | None] | None = None,
) -> dict[str, Any]:
    return {
        "bank_name": bank_name,
        "account_number": account_number,
        "period": dict(period) if period is not None else None,
        "transactions": [dict(t) for t in transactions],
    }
