# enginecalc/core/computed.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, Protocol, Union, runtime_checkable

import numpy as np

from .exceptions import CoreError, EvaluationCancelled
from .formula import DEFAULT_CONFIG, FormulaConfig, build_bindings, evaluate
from .log import LogChannel, LogData
from .template import ComputedChannelTemplate

logger = logging.getLogger(__name__)


@runtime_checkable
class ChannelLike(Protocol):
    """What chart and analysis consumers need from any channel, real or computed."""

    @property
    def name(self) -> str: ...

    @property
    def unit(self) -> str | None: ...

    def value_at(self, row: int) -> float: ...


@dataclass(slots=True)
class ComputedChannel:
    """
    A template applied to one log.

    Holds the resolved bindings, the evaluated values and the last error.
    `cached_data` and `error` are never both set; ``invalidate_cache()``
    drops the values but keeps the bindings so the next access only
    re-evaluates.
    """
    template: ComputedChannelTemplate
    channel_bindings: dict[str, int] = field(default_factory=dict)
    cached_data: np.ndarray | None = field(default=None, repr=False)
    error: str | None = None
    config: FormulaConfig = field(default=DEFAULT_CONFIG, repr=False, compare=False)

    @classmethod
    def from_template(
        cls,
        template: ComputedChannelTemplate,
        *,
        config: FormulaConfig = DEFAULT_CONFIG,
    ) -> "ComputedChannel":
        return cls(template=template.copy(), config=config)

    # Convenience accessors
    @property
    def name(self) -> str:
        return self.template.name

    @property
    def formula(self) -> str:
        return self.template.formula

    @property
    def unit(self) -> str:
        return self.template.unit

    @property
    def template_id(self) -> str:
        return self.template.id

    def is_valid(self) -> bool:
        return self.error is None and self.cached_data is not None

    def invalidate_cache(self) -> None:
        self.cached_data = None

    def set_template(self, template: ComputedChannelTemplate) -> None:
        """Replace the definition (e.g. after an edit); bindings, values and error are reset."""
        self.template = template.copy()
        self.channel_bindings = {}
        self.cached_data = None
        self.error = None

    # Core operations
    def bind(self, log: LogData) -> dict[str, int]:
        """Resolve the formula's channel names against `log`; raises BindingError."""
        refs = self.config.references(self.formula)
        self.channel_bindings = build_bindings(refs, log.channels)
        return self.channel_bindings

    def compute(
        self,
        log: LogData,
        *,
        should_cancel: Callable[[], bool] | None = None,
    ) -> np.ndarray:
        """Evaluate with the current bindings and cache the result; raises on failure."""
        values = evaluate(
            self.formula,
            self.channel_bindings,
            log.data,
            log.times,
            config=self.config,
            should_cancel=should_cancel,
        )
        self.cached_data = values
        self.error = None
        return values

    def apply(
        self,
        log: LogData,
        *,
        should_cancel: Callable[[], bool] | None = None,
    ) -> bool:
        """
        Bind to `log` and evaluate.

        Failures are stored in `error` (and `cached_data` cleared) instead of
        raised; cancellation still propagates. Returns ``is_valid()``.
        """
        try:
            self.bind(log)
            self.compute(log, should_cancel=should_cancel)
        except EvaluationCancelled:
            raise
        except CoreError as e:
            logger.warning("Computed channel %r could not be applied: %s", self.name, e)
            self.cached_data = None
            self.error = str(e)
        return self.is_valid()

    def values(self, log: LogData) -> np.ndarray | None:
        """Cached values, re-evaluating after ``invalidate_cache()``; None if in error."""
        if self.cached_data is not None:
            return self.cached_data
        if not self.channel_bindings:
            self.apply(log)
            return self.cached_data
        try:
            self.compute(log)
        except EvaluationCancelled:
            raise
        except CoreError as e:
            self.error = str(e)
        return self.cached_data

    def value_at(self, row: int) -> float:
        """Cached value at `row`; NaN while the channel has no evaluated values."""
        if self.cached_data is None:
            return float("nan")
        return float(self.cached_data[row])


AnyChannel = Union[LogChannel, ComputedChannel]


@dataclass(slots=True)
class ComputedChannelSet:
    """
    Computed channels applied to one open log.

    Computed channels are addressed after the real ones: the channel at
    virtual index ``len(log.channels) + i`` is the i-th computed channel.
    """
    log: LogData = field(repr=False)
    computed: list[ComputedChannel] = field(default_factory=list)
    config: FormulaConfig = field(default=DEFAULT_CONFIG, repr=False, compare=False)

    def __len__(self) -> int:
        return len(self.computed)

    def __iter__(self) -> Iterator[ComputedChannel]:
        return iter(self.computed)

    def apply(
        self,
        template: ComputedChannelTemplate,
        *,
        should_cancel: Callable[[], bool] | None = None,
    ) -> ComputedChannel:
        """
        Bind and evaluate `template` against the log and keep the result.

        Binding and evaluation errors propagate and nothing is added.
        """
        channel = ComputedChannel.from_template(template, config=self.config)
        channel.bind(self.log)
        channel.compute(self.log, should_cancel=should_cancel)
        self.computed.append(channel)
        logger.info("Applied computed channel %r", channel.name)
        return channel

    def remove(self, index: int) -> ComputedChannel:
        return self.computed.pop(index)

    def invalidate_all(self) -> None:
        for channel in self.computed:
            channel.invalidate_cache()

    def virtual_index(self, index: int) -> int:
        return self.log.n_channels + index

    def channel_at(self, virtual_index: int) -> AnyChannel:
        if virtual_index < 0:
            raise IndexError(f"channel index {virtual_index} out of range")
        n_real = self.log.n_channels
        if virtual_index < n_real:
            return self.log.channel_at(virtual_index)
        try:
            return self.computed[virtual_index - n_real]
        except IndexError:
            raise IndexError(f"channel index {virtual_index} out of range") from None

    def channels(self) -> Iterator[AnyChannel]:
        """Real channels in column order, then computed channels in apply order."""
        for i in range(self.log.n_channels):
            yield self.log.channel_at(i)
        yield from self.computed
