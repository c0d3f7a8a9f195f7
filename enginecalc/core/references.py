# enginecalc/core/references.py
"""
Channel references inside computed-channel formulas.

A formula such as ``"Manifold Pressure" * 0.145 - RPM[-1] / RPM@-0.1s``
references channels either bare (identifier-like names) or quoted (any
name), each optionally followed by a time-shift suffix:

- ``[±n]``     sample offset
- ``@±x.ys``   elapsed-time offset in seconds

The scanner below walks the text once, left to right. At each position the
first matching rule wins:

1. a quoted name (so nothing inside quotes can become a bare reference)
2. a number literal (so ``1e-3`` never yields a channel named ``e``)
3. a bare identifier, dropped when it is a reserved function/constant name
4. anything else is skipped

A bare name of the form ``_<stat>_<channel>`` (``_mean_RPM``, ``_stdev_RPM``,
``_min_RPM``, ``_max_RPM``, ``_range_RPM``) is a statistic reference: it
stands for one number computed over the whole of ``<channel>``. Quote the
name to reach a channel that is literally called ``_mean_RPM``.
"""
from __future__ import annotations

import keyword
import re
from dataclasses import dataclass
from typing import Collection, Iterable, Iterator

from .timeshift import TimeShift, parse_time_shift


RESERVED_NAMES: frozenset[str] = frozenset({
    # trigonometric / hyperbolic
    "sin", "cos", "tan", "asin", "acos", "atan", "atan2",
    "sinh", "cosh", "tanh", "asinh", "acosh", "atanh",
    # powers / logarithms
    "sqrt", "abs", "exp", "ln", "log", "log2", "log10",
    # rounding
    "floor", "ceil", "round", "trunc", "fract", "signum",
    "min", "max",
    # constants
    "pi", "e", "tau", "phi",
})

_SUFFIX = r"(?:\[(?P<index>[+-]?[0-9]+)\]|@(?P<time>[+-]?[0-9]+\.?[0-9]*)s)?"

_QUOTED_RE = re.compile(r'"(?P<name>[^"]+)"' + _SUFFIX)
_BARE_RE = re.compile(r"(?P<name>[A-Za-z_][A-Za-z0-9_]*)" + _SUFFIX)
_NUMBER_RE = re.compile(r"(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

# whole-channel statistics available as `_<stat>_<channel>`
STATISTICS: tuple[str, ...] = ("mean", "stdev", "min", "max", "range")
_STATISTIC_RE = re.compile(r"_(?P<stat>" + "|".join(STATISTICS) + r")_(?P<name>[A-Za-z0-9_]+)")


@dataclass(frozen=True, slots=True)
class ChannelReference:
    """
    One channel reference as written in a formula.

    For a statistic reference `name` is the underlying channel and
    `statistic` one of STATISTICS; its time shift is ignored.
    """

    name: str
    time_shift: TimeShift
    full_match: str
    statistic: str | None = None


def _reference(match: re.Match[str], *, bare: bool = False) -> ChannelReference:
    name = match.group("name")
    statistic = None
    if bare:
        stat = _STATISTIC_RE.fullmatch(name)
        if stat is not None:
            name, statistic = stat.group("name"), stat.group("stat")
    return ChannelReference(
        name=name,
        time_shift=parse_time_shift(match.group("index"), match.group("time")),
        full_match=match.group(0),
        statistic=statistic,
    )


def _scan(
    formula: str,
    reserved_names: Collection[str],
) -> Iterator[tuple[int, int, ChannelReference]]:
    """Yield ``(start, end, reference)`` for every reference, in text order."""
    reserved = {name.lower() for name in reserved_names}
    pos = 0
    length = len(formula)

    while pos < length:
        ch = formula[pos]

        if ch == '"':
            m = _QUOTED_RE.match(formula, pos)
            if m is None:
                # unterminated or empty quote
                pos += 1
                continue
            yield m.start(), m.end(), _reference(m)
            pos = m.end()
            continue

        m = _NUMBER_RE.match(formula, pos)
        if m is not None:
            pos = m.end()
            continue

        m = _BARE_RE.match(formula, pos)
        if m is not None:
            if m.group("name").lower() not in reserved:
                yield m.start(), m.end(), _reference(m, bare=True)
            pos = m.end()
            continue

        pos += 1


def extract_references(
    formula: str,
    reserved_names: Collection[str] = RESERVED_NAMES,
) -> list[ChannelReference]:
    """
    Return the distinct channel references of `formula`.

    References are ordered longest ``full_match`` first (ties keep their
    order of appearance) and deduplicated by ``full_match``. Two references
    to the same channel with different shifts are both kept.
    """
    found = [ref for _, _, ref in _scan(formula, reserved_names)]
    found.sort(key=lambda ref: len(ref.full_match), reverse=True)

    seen: set[str] = set()
    unique: list[ChannelReference] = []
    for ref in found:
        if ref.full_match in seen:
            continue
        seen.add(ref.full_match)
        unique.append(ref)
    return unique


def sanitize_identifier(full_match: str) -> str:
    """
    Map a matched reference text to an expression identifier.

    Every non-alphanumeric character becomes ``_``; ``v_`` is prepended when
    the result is empty, starts with a digit or is a Python keyword.

    >>> sanitize_identifier('"Manifold Pressure"')
    '_Manifold_Pressure_'
    >>> sanitize_identifier("RPM[-1]")
    'RPM__1_'
    """
    out = "".join(c if c.isalnum() and ("_" + c).isidentifier() else "_" for c in full_match)
    if not out or out[0].isdigit() or keyword.iskeyword(out):
        return f"v_{out}"
    return out


def assign_identifiers(references: Iterable[ChannelReference]) -> dict[str, str]:
    """
    Map each reference's ``full_match`` to a distinct expression identifier.

    Identifiers are :func:`sanitize_identifier` results; when two matched
    texts sanitize alike (``RPM[-1]`` and ``RPM[+1]``) the later one, in
    `references` order, gets a ``_2``, ``_3``... suffix.
    """
    refs = list(references)
    plain = {sanitize_identifier(ref.full_match) for ref in refs}
    taken: set[str] = set()
    assigned: dict[str, str] = {}

    for ref in refs:
        if ref.full_match in assigned:
            continue
        ident = sanitize_identifier(ref.full_match)
        if ident in taken:
            n = 2
            while f"{ident}_{n}" in taken or f"{ident}_{n}" in plain:
                n += 1
            ident = f"{ident}_{n}"
        taken.add(ident)
        assigned[ref.full_match] = ident
    return assigned


def prepare_formula(
    formula: str,
    reserved_names: Collection[str] = RESERVED_NAMES,
) -> str:
    """
    Replace every channel reference of `formula` by its identifier.

    Identifiers come from :func:`assign_identifiers` over
    :func:`extract_references`, so the result is fully determined by the
    formula text. Substitution works on the scanned spans: a shorter
    reference never clobbers part of a longer one sharing its prefix.
    """
    identifiers = assign_identifiers(extract_references(formula, reserved_names))
    parts: list[str] = []
    last = 0
    for start, end, ref in _scan(formula, reserved_names):
        ident = identifiers[ref.full_match]
        parts.append(formula[last:start])
        # a space keeps `0x1F` or `2RPM` from fusing into one token
        previous = parts[-1] or (parts[-2] if len(parts) > 1 else "")
        if _fuses(previous[-1:], ident[:1]):
            parts.append(" ")
        parts.append(ident)
        if _fuses(ident[-1:], formula[end:end + 1]):
            parts.append(" ")
        last = end
    parts.append(formula[last:])
    return "".join(parts)


def _fuses(left: str, right: str) -> bool:
    return bool(left) and bool(right) and (left.isalnum() or left in "_.") and (
        right.isalnum() or right == "_"
    )
