import json

import pytest

from sentrylite.project_id import ParseProjectIdError, ProjectId


def test_parse_equals_constructed():
    assert ProjectId.parse("42") == ProjectId("42")


def test_parse_keeps_non_numeric_value():
    assert ProjectId.parse("42xxx").value == "42xxx"


def test_parse_empty_fails():
    with pytest.raises(ParseProjectIdError, match="empty or missing project id"):
        ProjectId.parse("")


def test_parse_error_is_value_error():
    with pytest.raises(ValueError):
        ProjectId.parse("")


def test_to_string():
    assert str(ProjectId("42")) == "42"


def test_to_json():
    assert ProjectId("42").to_json() == '"42"'


def test_from_json():
    assert ProjectId.from_json('"42"') == ProjectId("42")


def test_json_roundtrip():
    pid = ProjectId("abc123youandme%21%21")
    assert ProjectId.from_json(pid.to_json()) == pid


def test_from_json_wrong_type():
    with pytest.raises(ValueError):
        ProjectId.from_json("42")


def test_from_json_malformed():
    with pytest.raises(json.JSONDecodeError):
        ProjectId.from_json('"42')


def test_ordering_and_hashing():
    ids = sorted([ProjectId("b"), ProjectId("a"), ProjectId("c")])
    assert [i.value for i in ids] == ["a", "b", "c"]
    assert len({ProjectId("1"), ProjectId("1")}) == 1