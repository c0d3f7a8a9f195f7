# enginecalc/core/timeshift.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


@dataclass(frozen=True, slots=True)
class NoShift:
    """Read the value of the current record."""


@dataclass(frozen=True, slots=True)
class IndexOffset:
    """Read the value `samples` records away, e.g. ``RPM[-1]``."""

    samples: int


@dataclass(frozen=True, slots=True)
class TimeOffset:
    """Read the value nearest to `seconds` away in time, e.g. ``RPM@-0.1s``."""

    seconds: float


TimeShift = Union[NoShift, IndexOffset, TimeOffset]

NO_SHIFT = NoShift()


def parse_time_shift(index_text: str | None, time_text: str | None) -> TimeShift:
    """
    Build a TimeShift from the captured suffix of a channel reference.

    `index_text` is the content of ``[...]``, `time_text` the number between
    ``@`` and ``s``. A value that does not parse (or does not fit a 32-bit
    sample offset) yields NO_SHIFT rather than an error.
    """
    if index_text is not None:
        try:
            samples = int(index_text)
        except ValueError:
            return NO_SHIFT
        if not _INT32_MIN <= samples <= _INT32_MAX:
            return NO_SHIFT
        return IndexOffset(samples)

    if time_text is not None:
        try:
            return TimeOffset(float(time_text))
        except ValueError:
            return NO_SHIFT

    return NO_SHIFT
