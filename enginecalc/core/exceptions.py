# enginecalc/core/exceptions.py
from __future__ import annotations

from typing import Iterable


class CoreError(Exception):
    """Base error for all core-domain exceptions."""


# ---- Validation / construction errors ----
class InvalidLog(CoreError):
    """Raised when a LogData is constructed with invalid inputs."""


# ---- Formula errors ----
class FormulaError(CoreError):
    """Base error for formula validation, binding and parsing failures."""


class EmptyFormula(FormulaError):
    """Raised when a formula is empty or whitespace only."""

    def __init__(self) -> None:
        super().__init__("Formula cannot be empty")


class UnknownChannels(FormulaError):
    """Raised when one or more referenced channels are not available."""

    def __init__(self, names: Iterable[str]) -> None:
        self.names = list(names)
        super().__init__(f"Unknown channels: {', '.join(self.names)}")


class BindingError(FormulaError, KeyError):
    """Raised when a referenced channel cannot be bound to a column."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Channel not found: {name}")

    # KeyError.__str__ would repr() the message
    def __str__(self) -> str:
        return str(self.args[0])


class FormulaSyntaxError(FormulaError):
    """Raised when the arithmetic engine cannot parse or evaluate a formula."""


class EvaluationCancelled(CoreError):
    """Raised when an evaluation is stopped by its cancellation callback."""


# ---- Lookup errors (also behave like KeyError for dict-like APIs) ----
class ChannelNotFound(CoreError, KeyError):
    """Raised when a requested channel name is not present in a log."""


class TemplateNotFound(CoreError, KeyError):
    """Raised when a requested template id is not present."""


# ---- Library errors ----
class LibraryError(CoreError):
    """Raised when the template library cannot be persisted."""
