# enginecalc/core/__init__.py
"""
Core computed-channel engine for enginecalc.

This module defines the file-format-agnostic model:
- LogData / LogChannel: normalized engine log and its real channels
- ChannelReference / TimeShift: channel references found in formulas
- validate / build_bindings / evaluate / preview: the formula engine
- ComputedChannelTemplate / ComputedChannelLibrary: persisted definitions
- ComputedChannel / ComputedChannelSet: templates applied to one log

The core layer is independent from I/O and storage formats.
"""

from .log import LogData, LogChannel
from .timeshift import TimeShift, NoShift, IndexOffset, TimeOffset, NO_SHIFT, parse_time_shift
from .references import (
    RESERVED_NAMES,
    STATISTICS,
    ChannelReference,
    extract_references,
    sanitize_identifier,
    assign_identifiers,
    prepare_formula,
)
from .expression import Expression, compile_expression, DEFAULT_FUNCTIONS
from .formula import (
    FormulaConfig,
    DEFAULT_CONFIG,
    Evaluation,
    validate,
    check_formula,
    build_bindings,
    find_nearest_time,
    channel_statistic,
    evaluate,
    evaluate_records,
    preview,
)
from .template import ComputedChannelTemplate, ComputedChannelLibrary
from .computed import ChannelLike, AnyChannel, ComputedChannel, ComputedChannelSet
from .exceptions import (
    CoreError,
    InvalidLog,
    FormulaError,
    EmptyFormula,
    UnknownChannels,
    BindingError,
    FormulaSyntaxError,
    EvaluationCancelled,
    ChannelNotFound,
    TemplateNotFound,
    LibraryError,
)


__all__ = [
    # log
    "LogData",
    "LogChannel",

    # references
    "TimeShift",
    "NoShift",
    "IndexOffset",
    "TimeOffset",
    "NO_SHIFT",
    "parse_time_shift",
    "RESERVED_NAMES",
    "STATISTICS",
    "ChannelReference",
    "extract_references",
    "sanitize_identifier",
    "assign_identifiers",
    "prepare_formula",

    # engine
    "Expression",
    "compile_expression",
    "DEFAULT_FUNCTIONS",
    "FormulaConfig",
    "DEFAULT_CONFIG",
    "Evaluation",
    "validate",
    "check_formula",
    "build_bindings",
    "find_nearest_time",
    "channel_statistic",
    "evaluate",
    "evaluate_records",
    "preview",

    # templates / instances
    "ComputedChannelTemplate",
    "ComputedChannelLibrary",
    "ChannelLike",
    "AnyChannel",
    "ComputedChannel",
    "ComputedChannelSet",

    # exceptions
    "CoreError",
    "InvalidLog",
    "FormulaError",
    "EmptyFormula",
    "UnknownChannels",
    "BindingError",
    "FormulaSyntaxError",
    "EvaluationCancelled",
    "ChannelNotFound",
    "TemplateNotFound",
    "LibraryError",
]
