# enginecalc/core/template.py
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Iterator, Mapping

from .exceptions import TemplateNotFound


def _now() -> int:
    return int(time.time())


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class ComputedChannelTemplate:
    """
    File-independent definition of a computed channel.

    Identity is `id`: it survives edits of name and formula. Edits go through
    :meth:`edit` (or direct assignment followed by :meth:`touch`) so that
    `modified_at` follows.
    """
    id: str
    name: str
    formula: str
    unit: str = ""
    description: str = ""
    created_at: int = 0
    modified_at: int = 0

    @classmethod
    def new(
        cls,
        name: str,
        formula: str,
        unit: str = "",
        description: str = "",
    ) -> "ComputedChannelTemplate":
        now = _now()
        return cls(
            id=_new_id(),
            name=name,
            formula=formula,
            unit=unit,
            description=description,
            created_at=now,
            modified_at=now,
        )

    def touch(self) -> None:
        self.modified_at = _now()

    def edit(
        self,
        *,
        name: str | None = None,
        formula: str | None = None,
        unit: str | None = None,
        description: str | None = None,
    ) -> None:
        if name is not None:
            self.name = name
        if formula is not None:
            self.formula = formula
        if unit is not None:
            self.unit = unit
        if description is not None:
            self.description = description
        self.touch()

    def copy(self) -> "ComputedChannelTemplate":
        return replace(self)

    def duplicate(self) -> "ComputedChannelTemplate":
        """A new template with the same definition, a fresh id and a ``(copy)`` name."""
        return ComputedChannelTemplate.new(
            name=f"{self.name} (copy)",
            formula=self.formula,
            unit=self.unit,
            description=self.description,
        )

    # ---- serialization ----
    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "formula": self.formula,
            "unit": self.unit,
            "description": self.description,
            "created_at": self.created_at,
            "modified_at": self.modified_at,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ComputedChannelTemplate":
        """Build a template from stored fields; missing fields get defaults, unknown ones are ignored."""
        if not isinstance(raw, Mapping):
            raise TypeError(f"template entry must be an object, got {type(raw).__name__}")
        # null counts as missing
        created_at = int(raw.get("created_at") or 0)
        modified_at = raw.get("modified_at")
        return cls(
            id=str(raw.get("id") or _new_id()),
            name=str(raw.get("name") or ""),
            formula=str(raw.get("formula") or ""),
            unit=str(raw.get("unit") or ""),
            description=str(raw.get("description") or ""),
            created_at=created_at,
            modified_at=int(modified_at) if modified_at is not None else created_at,
        )


@dataclass(slots=True)
class ComputedChannelLibrary:
    """Ordered, versioned collection of computed channel templates."""

    CURRENT_VERSION: ClassVar[int] = 1

    version: int = 1
    templates: list[ComputedChannelTemplate] = field(default_factory=list)

    @classmethod
    def new(cls) -> "ComputedChannelLibrary":
        return cls(version=cls.CURRENT_VERSION, templates=[])

    # ---- list-like API ----
    def __len__(self) -> int:
        return len(self.templates)

    def __iter__(self) -> Iterator[ComputedChannelTemplate]:
        return iter(self.templates)

    def __contains__(self, template_id: object) -> bool:
        return any(t.id == template_id for t in self.templates)

    # ---- CRUD ----
    def add(self, template: ComputedChannelTemplate) -> ComputedChannelTemplate:
        self.templates.append(template)
        return template

    def remove(self, template_id: str) -> ComputedChannelTemplate | None:
        """Remove and return the template with `template_id`, or None if absent."""
        for i, template in enumerate(self.templates):
            if template.id == template_id:
                return self.templates.pop(i)
        return None

    def find(self, template_id: str) -> ComputedChannelTemplate | None:
        """The stored template with `template_id` (mutable, not a copy), or None."""
        for template in self.templates:
            if template.id == template_id:
                return template
        return None

    def update(self, template_id: str, **changes: str) -> ComputedChannelTemplate:
        """Apply `changes` (name/formula/unit/description) to a stored template and touch it."""
        template = self.find(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        template.edit(**changes)
        return template

    def duplicate(self, template_id: str) -> ComputedChannelTemplate:
        template = self.find(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return self.add(template.duplicate())

    def search(self, text: str) -> list[ComputedChannelTemplate]:
        """Templates whose name or formula contains `text`, case-insensitively."""
        needle = text.strip().lower()
        if not needle:
            return list(self.templates)
        return [
            t for t in self.templates
            if needle in t.name.lower() or needle in t.formula.lower()
        ]

    # ---- serialization ----
    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "templates": [t.to_dict() for t in self.templates],
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ComputedChannelLibrary":
        if not isinstance(raw, Mapping):
            raise TypeError(f"library document must be an object, got {type(raw).__name__}")
        entries = raw.get("templates") or []
        if not isinstance(entries, list):
            raise TypeError("`templates` must be a list")
        return cls(
            version=int(raw.get("version") or cls.CURRENT_VERSION),
            templates=[ComputedChannelTemplate.from_dict(e) for e in entries],
        )
