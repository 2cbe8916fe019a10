"""Tests for State.set / State.get."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest

from pystate import UNDEFINED, State
from pystate.exceptions import StateValidationError


def _adult(state: State, value: Any, value_type: str) -> str | None:
    if value_type != "number":
        return "age must be a number"
    if value < state.get("minimum_age"):
        return "too young"
    return None


class Person(State):
    type_name = "person"
    props = {
        "name": {"type": "string", "required": True},
        "nickname": "string",
        "born": "date",
        "tags": {"type": "array", "required": True},
        "meta": {"type": "object", "required": True},
        "size": {"type": "string", "values": ("s", "m", "l")},
        "age": {"test": _adult},
        "minimum_age": {"default": 18},
        "ssn": {"type": "string", "set_once": True},
        "note": {"type": "string", "required": True, "allow_null": True},
    }
    session = {"active": {"type": "string", "default": "no"}}


class TestDefaults:
    def test_required_properties_read_type_default(self) -> None:
        person = Person()
        assert person.get("name") == ""
        assert person.name == ""
        assert person.tags == []
        assert person.meta == {}

    def test_unset_optional_reads_none(self) -> None:
        person = Person()
        assert person.nickname is None
        assert person.get("born") is None

    def test_literal_default(self) -> None:
        assert Person().minimum_age == 18
        assert Person().active == "no"

    def test_mutable_defaults_are_fresh_per_instance(self) -> None:
        first, second = Person(), Person()
        first.tags.append("x")
        first.meta["k"] = 1
        assert first.tags is not second.tags
        assert first.meta is not second.meta
        assert second.tags == []
        assert second.meta == {}

    def test_default_is_memoized(self) -> None:
        person = Person()
        assert person.tags is person.tags

    def test_date_default_is_stored_like_a_set_value(self) -> None:
        class Meeting(State):
            props = {"when": {"type": "date", "required": True}}

        meeting = Meeting()
        when = meeting.when
        assert isinstance(when, datetime)
        assert isinstance(meeting.get_attributes(props=True, raw=True)["when"], float)

        seen: list[Any] = []
        meeting.on("all", lambda name, *args: seen.append(name))
        meeting.set("when", when)
        assert seen == []
        assert not meeting.has_changed("when")

    def test_unknown_name_reads_none(self) -> None:
        assert Person().get("missing") is None


class TestConstruction:
    def test_initial_attributes_are_silent(self) -> None:
        events: list[str] = []

        class Watched(Person):
            def trigger(self, name: str, *args: Any) -> None:
                events.append(name)
                super().trigger(name, *args)

        person = Watched({"name": "Ada", "nickname": "ada"})
        assert person.name == "Ada"
        assert person.nickname == "ada"
        assert events == []

    def test_cid_is_unique_and_prefixed(self) -> None:
        first, second = Person(), Person()
        assert first.cid.startswith("state")
        assert first.cid != second.cid

    def test_parent_is_weak(self) -> None:
        owner = Person()
        person = Person(parent=owner)
        same = person.parent is owner
        del owner
        assert same
        assert person.parent is None

    def test_no_parent(self) -> None:
        assert Person().parent is None


class TestSet:
    def test_key_value_and_mapping_forms(self) -> None:
        person = Person()
        assert person.set("name", "Ada") is person
        assert person.set({"nickname": "ada", "size": "m"}) is person
        assert (person.name, person.nickname, person.size) == ("Ada", "ada", "m")

    def test_attribute_assignment_routes_through_set(self) -> None:
        person = Person()
        with pytest.raises(StateValidationError):
            person.name = 5
        person.name = "Ada"
        assert person.get("name") == "Ada"

    def test_attribute_delete_unsets(self) -> None:
        person = Person({"nickname": "ada"})
        del person.nickname
        assert person.nickname is None

    def test_date_round_trip(self) -> None:
        born = datetime(1985, 12, 10, 12, 30, 15, 250000, tzinfo=UTC)
        person = Person()
        person.born = born
        assert isinstance(person.born, datetime)
        assert person.born.timestamp() == born.timestamp()

    def test_date_from_string(self) -> None:
        person = Person({"born": "2000-01-01T00:00:00+00:00"})
        assert person.born == datetime(2000, 1, 1, tzinfo=UTC)

    def test_unparseable_date_is_type_mismatch(self) -> None:
        person = Person()
        with pytest.raises(StateValidationError, match="must be of type date") as excinfo:
            person.set("born", "sometime last spring")
        assert excinfo.value.key == "born"
        assert person.born is None

    @pytest.mark.parametrize("value", ["99999999999999999", 1e20])
    def test_out_of_range_date_rejected(self, value: Any) -> None:
        person = Person({"born": datetime(2000, 1, 1, tzinfo=UTC)})
        with pytest.raises(StateValidationError, match="must be of type date"):
            person.set("born", value)
        assert person.born == datetime(2000, 1, 1, tzinfo=UTC)

    def test_type_mismatch(self) -> None:
        with pytest.raises(StateValidationError, match="Property 'nickname' must be of type string"):
            Person().set("nickname", 42)

    def test_null_allowed_for_optional_typed(self) -> None:
        person = Person({"nickname": "ada"})
        person.set("nickname", None)
        assert person.nickname is None

    def test_required_rejects_undefined(self) -> None:
        with pytest.raises(StateValidationError, match="Required property 'name'"):
            Person().set("name", UNDEFINED)

    def test_required_rejects_null(self) -> None:
        with pytest.raises(StateValidationError, match="cannot be null"):
            Person().set("name", None)

    def test_required_allow_null(self) -> None:
        person = Person()
        person.set("note", None)
        assert person.note is None

    def test_values_allow_list(self) -> None:
        person = Person()
        person.set("size", "l")
        with pytest.raises(StateValidationError, match="must be one of values: s, m, l"):
            person.set("size", "xl")
        assert person.size == "l"

    def test_test_hook_reads_instance_state(self) -> None:
        person = Person()
        person.set("age", 30)
        with pytest.raises(StateValidationError, match="failed validation with error: too young"):
            person.set("age", 12)
        person.set({"minimum_age": 10})
        person.set("age", 12)
        assert person.age == 12

    def test_test_hook_receives_coerced_type(self) -> None:
        seen: list[tuple[Any, str]] = []

        class Stamped(State):
            props = {"at": {"type": "date", "test": lambda state, value, value_type: seen.append((value, value_type))}}

        Stamped().set("at", 1000)
        assert seen == [(1000.0, "date")]

    def test_failure_commits_nothing(self) -> None:
        person = Person({"name": "Ada", "size": "s"})
        events: list[str] = []
        person.on("all", lambda name, *args: events.append(name))
        with pytest.raises(StateValidationError):
            person.set({"name": "Grace", "size": "xxl", "nickname": "g"})
        assert person.name == "Ada"
        assert person.size == "s"
        assert person.nickname is None
        assert events == []

    def test_flags_reset_after_failure(self) -> None:
        person = Person()
        with pytest.raises(StateValidationError):
            person.set("size", "xxl")
        changes: list[State] = []
        person.on("change", lambda state, options: changes.append(state))
        person.set("size", "s")
        assert changes == [person]

    def test_unset_option_removes_value(self) -> None:
        person = Person({"nickname": "ada"})
        person.set("nickname", "x", unset=True)
        assert person.nickname is None
        assert "nickname" not in person.get_attributes(props=True, raw=True)


class TestSetOnce:
    def test_first_set_is_free(self) -> None:
        person = Person()
        person.set("ssn", "123")
        assert person.ssn == "123"

    def test_second_changing_set_rejected(self) -> None:
        person = Person({"ssn": "123"})
        with pytest.raises(StateValidationError, match="can only be set once"):
            person.set("ssn", "456")
        assert person.ssn == "123"

    def test_same_value_is_allowed(self) -> None:
        person = Person({"ssn": "123"})
        person.set("ssn", "123")
        assert person.ssn == "123"

    def test_initial_overrides(self) -> None:
        person = Person({"ssn": "123"})
        person.set("ssn", "456", initial=True)
        assert person.ssn == "456"


class TestUnsetAndClear:
    def test_unset_optional_removes(self) -> None:
        person = Person({"nickname": "ada", "size": "m"})
        person.unset(["nickname", "size"])
        assert person.nickname is None
        assert person.size is None

    def test_unset_bypasses_allow_list(self) -> None:
        person = Person({"size": "m"})
        seen: list[Any] = []
        person.on("change:size", lambda state, value, options: seen.append(value))
        person.unset("size")
        assert seen == [UNDEFINED]
        assert "size" not in person.get_attributes(props=True, raw=True)

    def test_unset_required_resets_default(self) -> None:
        person = Person({"name": "Ada"})
        person.unset("name")
        assert person.name == ""

    def test_clear(self) -> None:
        person = Person({"name": "Ada", "nickname": "ada", "size": "s"})
        person.clear()
        assert person.nickname is None
        assert person.size is None
        assert person.name == ""


class TestAttributes:
    def test_props_and_session_split(self) -> None:
        person = Person({"name": "Ada", "active": "yes"})
        assert "active" not in person.get_attributes(props=True, raw=True)
        assert person.get_attributes(session=True, raw=True) == {"active": "yes"}
        assert person.attributes["active"] == "yes"

    def test_serialize_excludes_session(self) -> None:
        person = Person({"name": "Ada", "active": "yes"})
        data = person.serialize()
        assert data["name"] == "Ada"
        assert "active" not in data

    def test_raw_keeps_stored_representation(self) -> None:
        born = datetime(2000, 1, 1, tzinfo=UTC)
        person = Person({"born": born})
        assert person.get_attributes(props=True, raw=True)["born"] == born.timestamp() * 1000
        assert person.get_attributes(props=True)["born"] == born


class TestChangeTracking:
    def test_has_changed_and_changed_attributes(self) -> None:
        person = Person()
        person.set({"name": "Ada", "nickname": "ada"})
        assert person.has_changed()
        assert person.has_changed("name")
        assert person.changed_attributes() == {"name": "Ada", "nickname": "ada"}

        person.set("name", "Ada")
        assert not person.has_changed("name")
        assert not person.has_changed()

    def test_changed_attributes_diff(self) -> None:
        person = Person({"name": "Ada", "nickname": "ada"})
        assert person.changed_attributes({"name": "Ada", "nickname": "x", "undeclared": 1}) == {"nickname": "x"}

    def test_previous(self) -> None:
        person = Person({"name": "Ada"})
        person.set("name", "Grace")
        assert person.previous("name") == "Ada"
        assert person.previous_attributes()["name"] == "Ada"

    def test_previous_of_new_key_is_none(self) -> None:
        person = Person()
        person.set("nickname", "ada")
        assert person.previous("nickname") is None


class TestPreValidation:
    class Range(State):
        props = {"low": {"default": 0}, "high": {"default": 10}}

        def validate(self, attrs: dict[str, Any], options: dict[str, Any]) -> str | None:
            if attrs["low"] > attrs["high"]:
                return "low must not exceed high"
            return None

    def test_rejection_returns_false(self) -> None:
        state = self.Range()
        invalid: list[Any] = []
        state.on("invalid", lambda s, error, options: invalid.append(error))
        state.on("change", lambda s, options: invalid.append("changed"))
        assert state.set("low", 20, validate=True) is False
        assert state.low == 0
        assert state.validation_error == "low must not exceed high"
        assert invalid == ["low must not exceed high"]

    def test_without_flag_validate_is_skipped(self) -> None:
        state = self.Range()
        assert state.set("low", 20) is state
        assert not state.is_valid()

    def test_valid(self) -> None:
        state = self.Range()
        assert state.set("low", 5, validate=True) is state
        assert state.validation_error is None
        assert state.is_valid()
