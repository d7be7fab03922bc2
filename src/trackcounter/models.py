"""Value objects for inbound track requests."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

#: Query parameter carrying the increment magnitude.
COUNT_PARAM = "count"

# Plain decimal notation only: optional sign, digits with optional
# fraction (or a bare fraction), optional exponent. ASCII digits only.
_NUMERIC_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)

ParamValue = str | list[str]


def parse_count(raw: ParamValue | None) -> int | None:
    """Return the increment magnitude encoded by *raw*, or ``None`` to skip.

    Only a single, fully numeric, finite value strictly greater than zero
    is accepted; it is truncated toward zero. ``"1.9"`` gives ``1``,
    while ``"0.5"`` is accepted and truncates to ``0``.
    """
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    if not _NUMERIC_RE.fullmatch(text):
        return None
    value = float(text)
    if not math.isfinite(value) or value <= 0:
        return None
    return math.floor(value)


def collect_params(items: Iterable[tuple[str, str]]) -> dict[str, ParamValue]:
    """Fold query-string pairs into a mapping, preserving first-seen key order.

    A key that occurs more than once maps to the list of its values.
    """
    params: dict[str, ParamValue] = {}
    for key, value in items:
        current = params.get(key)
        if current is None:
            params[key] = value
        elif isinstance(current, list):
            current.append(value)
        else:
            params[key] = [current, value]
    return params


class TrackRequest(BaseModel):
    """Parameters of one ``/track`` call.

    ``params`` is exactly what gets written to the audit file;
    ``increment`` is ``None`` when the request must not touch the counter.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    params: dict[str, ParamValue] = Field(default_factory=dict)

    @classmethod
    def from_query(cls, items: Iterable[tuple[str, str]]) -> TrackRequest:
        return cls(params=collect_params(items))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def increment(self) -> int | None:
        return parse_count(self.params.get(COUNT_PARAM))

    def audit_record(self) -> dict[str, Any]:
        """Copy of the parameters safe to hand to the audit sink."""
        return {k: list(v) if isinstance(v, list) else v for k, v in self.params.items()}
