# enginecalc/core/log.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from .exceptions import ChannelNotFound, InvalidLog


@dataclass(frozen=True, slots=True)
class LogData:
    """
    Normalized in-memory engine log, as produced by any vendor parser.

    - channels: channel names, in column order
    - data: row-major float64 matrix (rows = samples, columns = channels)
    - times: sample times in seconds, one per row, non-decreasing
    - units: optional display unit per channel
    """
    channels: Sequence[str]
    data: np.ndarray = field(repr=False)
    times: np.ndarray = field(repr=False)
    units: Sequence[str | None] | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        names = tuple(self.channels)
        for name in names:
            if not isinstance(name, str) or not name.strip():
                raise InvalidLog("LogData.channels must be non-empty strings.")

        d = np.asarray(self.data, dtype=np.float64)
        t = np.asarray(self.times, dtype=np.float64)

        if d.size == 0 and d.ndim != 2:
            d = d.reshape(0, len(names))
        if d.ndim != 2:
            raise InvalidLog(f"`data` must be 2D, got shape {d.shape}")
        if t.ndim != 1:
            raise InvalidLog(f"`times` must be 1D, got shape {t.shape}")
        if d.shape[1] != len(names):
            raise InvalidLog(
                f"`data` has {d.shape[1]} columns but {len(names)} channel names were given"
            )
        if d.shape[0] != t.size:
            raise InvalidLog(
                f"`data` rows and `times` must have same length, got {d.shape[0]} vs {t.size}"
            )

        if t.size > 0:
            if not np.isfinite(t).all():
                raise InvalidLog("`times` contains non-finite values (NaN/Inf).")
            if np.any(np.diff(t) < 0):
                raise InvalidLog("`times` must be monotonic non-decreasing.")

        if self.units is None:
            units: tuple[str | None, ...] = (None,) * len(names)
        else:
            units = tuple(self.units)
            if len(units) != len(names):
                raise InvalidLog("`units` must have one entry per channel.")

        object.__setattr__(self, "channels", names)
        object.__setattr__(self, "data", d)
        object.__setattr__(self, "times", t)
        object.__setattr__(self, "units", units)

    @property
    def n_rows(self) -> int:
        return int(self.data.shape[0])

    @property
    def n_channels(self) -> int:
        return len(self.channels)

    @property
    def t_start(self) -> float | None:
        return None if self.n_rows == 0 else float(self.times[0])

    @property
    def t_end(self) -> float | None:
        return None if self.n_rows == 0 else float(self.times[-1])

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.find(name) is not None

    def find(self, name: str) -> int | None:
        """Column index of the first channel matching `name` case-insensitively."""
        wanted = name.lower()
        for i, candidate in enumerate(self.channels):
            if candidate.lower() == wanted:
                return i
        return None

    def channel(self, name: str) -> "LogChannel":
        index = self.find(name)
        if index is None:
            raise ChannelNotFound(name)
        return LogChannel(log=self, index=index)

    def channel_at(self, index: int) -> "LogChannel":
        return LogChannel(log=self, index=index)


@dataclass(frozen=True, slots=True)
class LogChannel:
    """A real (recorded) channel: one column of a LogData."""

    log: LogData = field(repr=False)
    index: int

    def __post_init__(self) -> None:
        if not isinstance(self.log, LogData):
            raise InvalidLog("LogChannel.log must be a LogData instance.")
        if not 0 <= self.index < self.log.n_channels:
            raise InvalidLog(
                f"Channel index {self.index} out of range for {self.log.n_channels} channels."
            )

    @property
    def name(self) -> str:
        return self.log.channels[self.index]

    @property
    def unit(self) -> str | None:
        return self.log.units[self.index]

    @property
    def time(self) -> np.ndarray:
        return self.log.times

    @property
    def values(self) -> np.ndarray:
        return self.log.data[:, self.index]

    @property
    def n(self) -> int:
        return self.log.n_rows

    def value_at(self, row: int) -> float:
        return float(self.log.data[row, self.index])
