# enginecalc/core/formula.py
"""
Formula validation, channel binding and per-record evaluation.

Three entry points are used by the application:

- :func:`validate` checks a formula against the channel names of a log
  before it is saved or applied
- :func:`evaluate` computes the whole computed channel for one log
- :func:`preview` returns the first few values of :func:`evaluate`
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

import numpy as np

from .exceptions import (
    BindingError,
    CoreError,
    EmptyFormula,
    EvaluationCancelled,
    FormulaSyntaxError,
    InvalidLog,
    UnknownChannels,
)
from .expression import DEFAULT_FUNCTIONS, EVALUATION_ERRORS, Expression, compile_expression
from .references import (
    RESERVED_NAMES,
    STATISTICS,
    ChannelReference,
    assign_identifiers,
    extract_references,
    prepare_formula,
)
from .timeshift import IndexOffset, TimeOffset

logger = logging.getLogger(__name__)

# Records evaluated between two polls of a cancellation callback.
CANCEL_CHECK_INTERVAL = 1024


@dataclass(frozen=True, slots=True)
class FormulaConfig:
    """Lookup tables the formula engine works with."""

    reserved_names: frozenset[str] = RESERVED_NAMES
    functions: Mapping[str, Any] = field(default_factory=lambda: DEFAULT_FUNCTIONS, repr=False)

    def references(self, formula: str) -> list[ChannelReference]:
        return extract_references(formula, self.reserved_names)

    def compile(self, formula: str) -> Expression:
        return compile_expression(prepare_formula(formula, self.reserved_names), self.functions)


DEFAULT_CONFIG = FormulaConfig()


# ---------------------------------------------------------------------------
# Validation / binding
# ---------------------------------------------------------------------------
def validate(
    formula: str,
    available_channels: Iterable[str],
    *,
    config: FormulaConfig = DEFAULT_CONFIG,
) -> None:
    """
    Check that `formula` can be applied to a log with `available_channels`.

    Raises EmptyFormula, UnknownChannels (listing every missing channel) or
    FormulaSyntaxError. The arithmetic is smoke-tested with every channel
    bound to 1.0; a NaN or infinite result is not an error.
    """
    if not formula.strip():
        raise EmptyFormula()

    refs = config.references(formula)
    available = {name.lower() for name in available_channels}

    missing: list[str] = []
    for ref in refs:
        if ref.name.lower() not in available and ref.name not in missing:
            missing.append(ref.name)
    if missing:
        raise UnknownChannels(missing)

    expression = config.compile(formula)
    identifiers = assign_identifiers(refs)
    dummies = {ident: np.float64(1.0) for ident in identifiers.values()}
    with np.errstate(all="ignore"):
        try:
            expression.evaluate(dummies)
        except EVALUATION_ERRORS as e:
            raise FormulaSyntaxError(f"Evaluation error: {e}") from e


def check_formula(
    formula: str,
    available_channels: Iterable[str],
    *,
    config: FormulaConfig = DEFAULT_CONFIG,
) -> str | None:
    """Return the validation error message for `formula`, or None if it is valid."""
    try:
        validate(formula, available_channels, config=config)
    except CoreError as e:
        return str(e)
    return None


def build_bindings(
    references: Iterable[ChannelReference],
    available_channels: Sequence[str],
) -> dict[str, int]:
    """
    Map each distinct reference name to its column in `available_channels`.

    Matching is case-insensitive and picks the first matching column. The
    first unresolved name raises BindingError.
    """
    lowered = [name.lower() for name in available_channels]
    bindings: dict[str, int] = {}
    for ref in references:
        if ref.name in bindings:
            continue
        try:
            bindings[ref.name] = lowered.index(ref.name.lower())
        except ValueError:
            raise BindingError(ref.name) from None
    return bindings


# ---------------------------------------------------------------------------
# Time alignment
# ---------------------------------------------------------------------------
def find_nearest_time(times: Sequence[float] | np.ndarray, target: float) -> int:
    """
    Index of the sample whose time is closest to `target`.

    `target` is clamped to the time range first. On an exact tie between
    two neighbours the lower index wins. Returns 0 for an empty vector.
    """
    t = np.asarray(times, dtype=np.float64)
    n = t.size
    if n == 0:
        return 0

    target = min(max(float(target), float(t[0])), float(t[-1]))
    i = int(np.searchsorted(t, target, side="left"))
    if i < n and t[i] == target:
        return i
    if i == 0:
        return 0
    if i >= n:
        return n - 1
    if abs(t[i - 1] - target) <= abs(t[i] - target):
        return i - 1
    return i


def nearest_time_indices(times: np.ndarray, targets: np.ndarray) -> np.ndarray:
    """Vectorized :func:`find_nearest_time` over an array of target times."""
    t = np.asarray(times, dtype=np.float64)
    n = t.size
    if n <= 1:
        return np.zeros(np.shape(targets), dtype=np.intp)

    clamped = np.clip(np.asarray(targets, dtype=np.float64), t[0], t[-1])
    hi = np.clip(np.searchsorted(t, clamped, side="left"), 0, n - 1)
    lo = np.clip(hi - 1, 0, n - 1)

    exact = t[hi] == clamped
    prefer_lo = np.abs(t[lo] - clamped) <= np.abs(t[hi] - clamped)
    return np.where(exact, hi, np.where(prefer_lo, lo, hi)).astype(np.intp)


# ---------------------------------------------------------------------------
# Whole-channel statistics
# ---------------------------------------------------------------------------
_STATISTIC_FUNCTIONS: dict[str, Callable[[np.ndarray], Any]] = {
    "mean": np.nanmean,
    "stdev": np.nanstd,
    "min": np.nanmin,
    "max": np.nanmax,
    "range": lambda v: np.nanmax(v) - np.nanmin(v),
}


def channel_statistic(values: np.ndarray | Sequence[float], statistic: str) -> float:
    """
    One statistic over a whole channel, NaN samples ignored.

    `statistic` is one of ``mean``, ``stdev`` (population), ``min``, ``max``
    or ``range``. A channel without any non-NaN sample gives 0.0.
    """
    try:
        func = _STATISTIC_FUNCTIONS[statistic]
    except KeyError:
        raise ValueError(f"Unknown statistic {statistic!r}") from None

    v = np.asarray(values, dtype=np.float64)
    if v.size == 0 or np.isnan(v).all():
        return 0.0
    with np.errstate(all="ignore"):
        return float(func(v))


def _target_rows(ref: ChannelReference, times: np.ndarray, rows: int) -> np.ndarray:
    base = np.arange(rows, dtype=np.intp)
    shift = ref.time_shift
    if isinstance(shift, IndexOffset):
        return np.clip(base + shift.samples, 0, rows - 1)
    if isinstance(shift, TimeOffset):
        return nearest_time_indices(times, times + shift.seconds)
    return base


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Evaluation:
    """
    Result of evaluating a formula over every record of a log.

    `degraded` marks the records whose evaluation failed or was not finite;
    their value in `values` is 0.0.
    """
    values: np.ndarray = field(repr=False)
    degraded: np.ndarray = field(repr=False)

    @property
    def degraded_count(self) -> int:
        return int(np.count_nonzero(self.degraded))


def evaluate_records(
    formula: str,
    bindings: Mapping[str, int],
    data: np.ndarray | Sequence[Sequence[float]],
    times: np.ndarray | Sequence[float],
    *,
    config: FormulaConfig = DEFAULT_CONFIG,
    should_cancel: Callable[[], bool] | None = None,
) -> Evaluation:
    """
    Evaluate `formula` once per row of `data`.

    Each reference reads column ``bindings[name]`` at its (time-shifted)
    row: sample offsets saturate at the first/last record, time offsets pick
    the record nearest to the shifted time. A statistic reference reads the
    same whole-column value on every row. A record whose evaluation raises
    or is NaN/inf gets 0.0 and is flagged in ``Evaluation.degraded``.

    Raises FormulaSyntaxError if the formula does not parse, BindingError if
    a referenced name has no binding, EvaluationCancelled if `should_cancel`
    returns True.
    """
    d = np.asarray(data, dtype=np.float64)
    if d.ndim != 2:
        if d.size == 0:
            d = d.reshape(0, 0)
        else:
            raise InvalidLog(f"`data` must be 2D, got shape {d.shape}")

    rows, n_columns = d.shape
    if rows == 0:
        return Evaluation(values=np.zeros(0), degraded=np.zeros(0, dtype=bool))

    t = np.asarray(times, dtype=np.float64)
    if t.shape != (rows,):
        raise InvalidLog(f"`times` must have one entry per row, got {t.size} for {rows} rows")

    refs = config.references(formula)
    expression = config.compile(formula)

    assigned = assign_identifiers(refs)
    identifiers: list[str] = []
    columns: list[np.ndarray] = []
    for ref in refs:
        column = bindings.get(ref.name)
        if column is None or not 0 <= column < n_columns:
            raise BindingError(ref.name)
        identifiers.append(assigned[ref.full_match])
        if ref.statistic is not None:
            columns.append(np.full(rows, channel_statistic(d[:, column], ref.statistic)))
        else:
            columns.append(d[_target_rows(ref, t, rows), column])

    values = np.zeros(rows, dtype=np.float64)
    degraded = np.zeros(rows, dtype=bool)

    with np.errstate(all="ignore"):
        for r in range(rows):
            if should_cancel is not None and r % CANCEL_CHECK_INTERVAL == 0 and should_cancel():
                raise EvaluationCancelled(f"Evaluation cancelled at record {r} of {rows}")

            variables = {name: col[r] for name, col in zip(identifiers, columns)}
            try:
                value = expression.evaluate(variables)
            except EVALUATION_ERRORS:
                degraded[r] = True
                continue

            if math.isfinite(value):
                values[r] = value
            else:
                degraded[r] = True

    result = Evaluation(values=values, degraded=degraded)
    if result.degraded_count:
        logger.debug(
            "Formula %r: %d of %d records evaluated to 0.0 (error or non-finite)",
            formula, result.degraded_count, rows,
        )
    return result


def evaluate(
    formula: str,
    bindings: Mapping[str, int],
    data: np.ndarray | Sequence[Sequence[float]],
    times: np.ndarray | Sequence[float],
    *,
    config: FormulaConfig = DEFAULT_CONFIG,
    should_cancel: Callable[[], bool] | None = None,
) -> np.ndarray:
    """Dense float64 array with one value per row of `data`; see :func:`evaluate_records`."""
    return evaluate_records(
        formula, bindings, data, times, config=config, should_cancel=should_cancel
    ).values


def preview(
    formula: str,
    bindings: Mapping[str, int],
    data: np.ndarray | Sequence[Sequence[float]],
    times: np.ndarray | Sequence[float],
    n: int,
    *,
    config: FormulaConfig = DEFAULT_CONFIG,
) -> np.ndarray:
    """First `n` values of :func:`evaluate`; empty for `n` <= 0."""
    return evaluate(formula, bindings, data, times, config=config)[:max(n, 0)].copy()
