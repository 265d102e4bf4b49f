"""Tests for sdk4me/client/params.py — parameter casting."""

import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum

import pytest

from sdk4me.client.params import (
    ValueKind,
    encode_body,
    encode_query,
    expand_param,
    json_default,
    kind_of,
    to_body,
    to_query,
    uri_escape,
)

UTC_TIME = datetime(2012, 3, 30, 23, 0, 0, tzinfo=timezone.utc)


class Status(Enum):
    WAITING_FOR = "waiting_for"


class TestKindOf:

    @pytest.mark.parametrize("value, kind", [
        (None, ValueKind.NULL),
        (True, ValueKind.BOOL),
        ("text", ValueKind.STRING),
        (UTC_TIME, ValueKind.DATETIME),
        (date(2020, 1, 31), ValueKind.DATE),
        (time(13, 45), ValueKind.TIME),
        ([1, 2], ValueKind.LIST),
        ((1, 2), ValueKind.LIST),
        ({"a": 1}, ValueKind.MAP),
        (15, ValueKind.OTHER),
    ])
    def test_classification(self, value, kind):
        assert kind_of(value) is kind


class TestToQuery:

    @pytest.mark.parametrize("value, expected", [
        (None, ""),
        ("normal", "normal"),
        ("hello;<", "hello%3B%3C"),
        (True, "true"),
        (False, "false"),
        (UTC_TIME, "2012-03-30T23%3A00%3A00%2B00%3A00"),
        (date(2020, 1, 31), "2020-01-31"),
        (time(13, 45, 12), "13:45"),
        (["first", "second;<", True], "first,second%3B%3C,true"),
        (15, "15"),
        (1.5, "1.5"),
        (Decimal("1.5"), "\"1.5\""),
        (uuid.UUID(int=1), "\"00000000-0000-0000-0000-000000000001\""),
        ({"id": 1}, "%7B%27id%27%3A%201%7D"),
    ])
    def test_cast(self, value, expected):
        assert to_query(value) == expected

    def test_datetime_normalized_to_utc(self):
        amsterdam = datetime(2012, 3, 31, 1, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_query(amsterdam) == "2012-03-30T23%3A00%3A00%2B00%3A00"

    def test_naive_datetime_treated_as_utc(self):
        assert to_query(datetime(2012, 3, 30, 23, 0, 0, 123456)) == "2012-03-30T23%3A00%3A00%2B00%3A00"

    def test_enum_uses_value(self):
        assert to_query(Status.WAITING_FOR) == "waiting_for"


class TestUriEscape:

    def test_dots_are_escaped(self):
        assert uri_escape("me@example.com") == "me%40example%2Ecom"

    def test_spaces_are_percent_encoded(self):
        assert uri_escape("a b") == "a%20b"

    def test_unreserved_characters_kept(self):
        assert uri_escape("a-b_c*d") == "a-b_c*d"


class TestToBody:

    def test_lists_are_not_cast(self):
        assert to_body([1, 2, 3]) == [1, 2, 3]

    def test_maps_are_not_cast(self):
        contacts = {"0": {"protocol": "email", "label": "work", "uri": "work@example.com"}}
        assert to_body(contacts) == contacts

    def test_strings_are_not_escaped(self):
        assert to_body("hello;<.") == "hello;<."

    def test_null_and_booleans(self):
        assert to_body(None) is None
        assert to_body(True) is True
        assert to_body(False) is False

    def test_dates_and_times(self):
        assert to_body(UTC_TIME) == "2012-03-30T23:00:00+00:00"
        assert to_body(date(2020, 1, 31)) == "2020-01-31"
        assert to_body(time(8, 5)) == "08:05"

    def test_other_values_become_strings(self):
        assert to_body(15) == "15"
        assert to_body(Status.WAITING_FOR) == "waiting_for"
        assert to_body(Decimal("1.50")) == "1.50"

    def test_json_default_for_nested_values(self):
        assert json_default(date(2020, 1, 31)) == "2020-01-31"
        assert json_default(UTC_TIME) == "2012-03-30T23:00:00+00:00"
        assert json_default(uuid.UUID(int=1)) == "00000000-0000-0000-0000-000000000001"
        assert json_default(frozenset()) == "frozenset()"


class TestExpandParam:

    def test_plain_key(self):
        assert expand_param("person_id", 5) == "person_id=5"

    def test_comparison_operator_key(self):
        assert expand_param("created_at=>", UTC_TIME) == "created_at=%3E2012-03-30T23%3A00%3A00%2B00%3A00"

    def test_not_equal_key(self):
        assert expand_param("id!=", 15) == "id%21=15"

    def test_key_is_escaped(self):
        assert expand_param("custom.field", "x") == "custom%2Efield=x"


class TestEncode:

    def test_query_keeps_order(self):
        assert encode_query({"b": 1, "a": "x"}) == "b=1&a=x"

    def test_query_accepts_pairs(self):
        assert encode_query([("id", 1), ("id", 2)]) == "id=1&id=2"

    def test_empty_query(self):
        assert encode_query(None) == ""
        assert encode_query({}) == ""

    def test_body_stringifies_keys(self):
        assert encode_body({"user_ids": [1, 2, 3], "status": Status.WAITING_FOR}) == {
            "user_ids": [1, 2, 3],
            "status": "waiting_for",
        }

    def test_query_with_decimal_and_uuid(self):
        query = encode_query({"amount": Decimal("1.5"), "ref": uuid.UUID(int=1)})
        assert query == 'amount="1.5"&ref="00000000-0000-0000-0000-000000000001"'
