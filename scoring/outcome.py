"""Tagged sub-score values.

Every axis produced by the scorers is either ``Computed`` from real evidence or
``Defaulted`` to a conservative constant because the evidence was missing.
Both expose ``value`` so arithmetic does not need to care which one it holds.
"""

from __future__ import annotations

import dataclasses
from typing import Iterable, Union


@dataclasses.dataclass(frozen=True)
class Computed:
    """Score derived from measured or extracted evidence."""

    value: float
    evidence: str

    @property
    def defaulted(self) -> bool:
        return False

    def as_dict(self) -> dict:
        return {"value": self.value, "source": "computed", "evidence": self.evidence}


@dataclasses.dataclass(frozen=True)
class Defaulted:
    """Conservative fallback used when the inputs did not support a real score."""

    value: float
    reason: str

    @property
    def defaulted(self) -> bool:
        return True

    def as_dict(self) -> dict:
        return {"value": self.value, "source": "defaulted", "reason": self.reason}


AxisScore = Union[Computed, Defaulted]


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def count_defaulted(scores: Iterable[AxisScore]) -> int:
    return sum(1 for score in scores if score.defaulted)
