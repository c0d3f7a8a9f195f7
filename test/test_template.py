# test/test_template.py
import uuid

import pytest

from enginecalc.core import (
    ComputedChannelLibrary,
    ComputedChannelTemplate,
    TemplateNotFound,
)
import enginecalc.core.template as template_module


@pytest.fixture
def frozen_clock(monkeypatch):
    clock = {"now": 1_700_000_000}
    monkeypatch.setattr(template_module, "_now", lambda: clock["now"])
    return clock


def test_new_sets_id_and_timestamps(frozen_clock):
    t = ComputedChannelTemplate.new("Boost Delta", "Boost - Boost[-1]", unit="kPa")

    uuid.UUID(t.id)  # valid uuid string
    assert t.name == "Boost Delta"
    assert t.formula == "Boost - Boost[-1]"
    assert t.unit == "kPa"
    assert t.description == ""
    assert t.created_at == t.modified_at == 1_700_000_000


def test_new_ids_are_unique():
    ids = {ComputedChannelTemplate.new("x", "RPM").id for _ in range(20)}
    assert len(ids) == 20


def test_touch_updates_only_modified_at(frozen_clock):
    t = ComputedChannelTemplate.new("x", "RPM")
    frozen_clock["now"] += 60
    t.touch()
    assert t.created_at == 1_700_000_000
    assert t.modified_at == 1_700_000_060


def test_edit_applies_changes_and_touches(frozen_clock):
    t = ComputedChannelTemplate.new("x", "RPM", description="old")
    frozen_clock["now"] += 5
    t.edit(name="y", formula="RPM / 60")

    assert (t.name, t.formula, t.unit, t.description) == ("y", "RPM / 60", "", "old")
    assert t.modified_at == 1_700_000_005


def test_duplicate_gets_fresh_identity(frozen_clock):
    t = ComputedChannelTemplate.new("Power", "Torque * RPM / 9549", unit="kW", description="d")
    frozen_clock["now"] += 10
    copy = t.duplicate()

    assert copy.id != t.id
    assert copy.name == "Power (copy)"
    assert (copy.formula, copy.unit, copy.description) == (t.formula, t.unit, t.description)
    assert copy.created_at == copy.modified_at == 1_700_000_010


def test_copy_is_independent():
    t = ComputedChannelTemplate.new("x", "RPM")
    c = t.copy()
    assert c == t
    c.name = "changed"
    assert t.name == "x"


def test_from_dict_defaults_and_unknown_fields():
    t = ComputedChannelTemplate.from_dict(
        {"id": "abc", "name": "n", "formula": "RPM", "created_at": 42, "colour": "red"}
    )
    assert t.id == "abc"
    assert t.unit == ""
    assert t.description == ""
    assert t.created_at == 42
    assert t.modified_at == 42


def test_from_dict_missing_id_generates_one():
    t = ComputedChannelTemplate.from_dict({"name": "n", "formula": "RPM"})
    uuid.UUID(t.id)
    assert t.created_at == 0


def test_from_dict_rejects_non_object():
    with pytest.raises(TypeError):
        ComputedChannelTemplate.from_dict(["not", "a", "dict"])


def test_to_dict_from_dict_preserves_fields():
    t = ComputedChannelTemplate.new("AFR", "14.7 * Lambda", unit="", description="air fuel")
    assert ComputedChannelTemplate.from_dict(t.to_dict()) == t


class TestLibrary:
    def _library(self):
        lib = ComputedChannelLibrary.new()
        self.a = lib.add(ComputedChannelTemplate.new("Boost Delta", "Boost - Boost[-1]"))
        self.b = lib.add(ComputedChannelTemplate.new("Power", "Torque * RPM / 9549"))
        return lib

    def test_new_is_empty(self):
        lib = ComputedChannelLibrary.new()
        assert lib.version == 1
        assert len(lib) == 0
        assert list(lib) == []

    def test_add_keeps_order(self):
        lib = self._library()
        assert [t.name for t in lib] == ["Boost Delta", "Power"]
        assert self.a.id in lib

    def test_find_returns_stored_template(self):
        lib = self._library()
        found = lib.find(self.b.id)
        assert found is self.b
        found.name = "Engine Power"
        assert lib.templates[1].name == "Engine Power"

    def test_find_missing(self):
        assert self._library().find("nope") is None

    def test_remove(self):
        lib = self._library()
        removed = lib.remove(self.a.id)
        assert removed is self.a
        assert len(lib) == 1
        assert self.a.id not in lib

    def test_remove_missing_returns_none(self):
        lib = self._library()
        assert lib.remove("nope") is None
        assert len(lib) == 2

    def test_update(self):
        lib = self._library()
        updated = lib.update(self.a.id, formula="Boost - Boost[-2]", unit="kPa")
        assert updated is self.a
        assert self.a.formula == "Boost - Boost[-2]"
        assert self.a.unit == "kPa"

    def test_update_missing_raises(self):
        lib = self._library()
        with pytest.raises(TemplateNotFound):
            lib.update("nope", name="x")
        with pytest.raises(KeyError):
            lib.update("nope", name="x")

    def test_duplicate_appends_copy(self):
        lib = self._library()
        copy = lib.duplicate(self.b.id)
        assert len(lib) == 3
        assert lib.templates[-1] is copy
        assert copy.name == "Power (copy)"

    def test_duplicate_missing_raises(self):
        with pytest.raises(TemplateNotFound):
            self._library().duplicate("nope")

    def test_search(self):
        lib = self._library()
        assert lib.search("power") == [self.b]
        assert lib.search("BOOST[") == [self.a]
        assert lib.search("rpm") == [self.b]
        assert lib.search("") == [self.a, self.b]
        assert lib.search("missing") == []

    def test_to_dict_layout(self):
        lib = self._library()
        doc = lib.to_dict()
        assert doc["version"] == 1
        assert [t["name"] for t in doc["templates"]] == ["Boost Delta", "Power"]
        assert set(doc["templates"][0]) == {
            "id", "name", "formula", "unit", "description", "created_at", "modified_at",
        }

    def test_from_dict_round_trip(self):
        lib = self._library()
        assert ComputedChannelLibrary.from_dict(lib.to_dict()) == lib

    def test_from_dict_defaults(self):
        lib = ComputedChannelLibrary.from_dict({})
        assert lib.version == ComputedChannelLibrary.CURRENT_VERSION
        assert len(lib) == 0

    def test_from_dict_rejects_bad_templates(self):
        with pytest.raises(TypeError):
            ComputedChannelLibrary.from_dict({"version": 1, "templates": {"a": 1}})


def test_from_dict_null_fields_fall_back_to_defaults():
    t = ComputedChannelTemplate.from_dict(
        {
            "id": None,
            "name": None,
            "formula": None,
            "unit": None,
            "description": None,
            "created_at": None,
            "modified_at": None,
        }
    )
    uuid.UUID(t.id)
    assert (t.name, t.formula, t.unit, t.description) == ("", "", "", "")
    assert t.created_at == 0
    assert t.modified_at == 0


def test_library_from_dict_null_version_and_templates():
    lib = ComputedChannelLibrary.from_dict({"version": None, "templates": None})
    assert lib.version == ComputedChannelLibrary.CURRENT_VERSION
    assert len(lib) == 0
