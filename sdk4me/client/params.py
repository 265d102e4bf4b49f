"""Type-aware casting of parameter values for query strings and JSON bodies.

Examples of query parameters:
    person_id: 5                         -> person_id=5
    "updated_at=>": yesterday            -> updated_at=%3E2020-01-01T00%3A00%3A00%2B00%3A00
    fields: ["id", "created_at"]         -> fields=id,created_at
"""

import json
from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timezone
from enum import Enum
from urllib.parse import quote


class ValueKind(Enum):
    NULL = "null"
    BOOL = "bool"
    STRING = "string"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    LIST = "list"
    MAP = "map"
    OTHER = "other"


def kind_of(value) -> ValueKind:
    """Classify a value; datetime is checked before date since it subclasses it."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, datetime):
        return ValueKind.DATETIME
    if isinstance(value, date):
        return ValueKind.DATE
    if isinstance(value, time):
        return ValueKind.TIME
    if isinstance(value, (list, tuple)):
        return ValueKind.LIST
    if isinstance(value, Mapping):
        return ValueKind.MAP
    return ValueKind.OTHER


def uri_escape(value: str) -> str:
    """Escape everything except letters, digits and ``*-_``; dots are escaped too."""
    return quote(value, safe="*").replace(".", "%2E").replace("~", "%7E")


def _iso_utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def to_query(value) -> str:
    """Cast a value for use in a URL query string."""
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return ""
    if kind is ValueKind.BOOL:
        return "true" if value else "false"
    if kind is ValueKind.STRING:
        return uri_escape(value)
    if kind is ValueKind.DATETIME:
        return uri_escape(_iso_utc(value))
    if kind is ValueKind.DATE:
        return value.strftime("%Y-%m-%d")
    if kind is ValueKind.TIME:
        return value.strftime("%H:%M")
    if kind is ValueKind.LIST:
        # comma separated lists are only used for filtering
        return ",".join(to_query(v) for v in value)
    if kind is ValueKind.MAP:
        return uri_escape(str(dict(value)))
    if isinstance(value, Enum):
        return uri_escape(str(value.value))
    return json.dumps(value, default=str)


def to_body(value):
    """Cast a value for use in a JSON request body.

    Lists and maps are structural in write requests and pass through untouched.
    """
    kind = kind_of(value)
    if kind in (ValueKind.NULL, ValueKind.BOOL, ValueKind.STRING, ValueKind.LIST, ValueKind.MAP):
        return value
    if kind is ValueKind.DATETIME:
        return _iso_utc(value)
    if kind is ValueKind.DATE:
        return value.strftime("%Y-%m-%d")
    if kind is ValueKind.TIME:
        return value.strftime("%H:%M")
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def expand_param(key, value) -> str:
    """Encode one ``key=value`` pair.

    Keys ending in a comparison operator such as ``created_at=>`` or
    ``id!=`` keep their ``=`` and get no extra separator.
    """
    key = str(key)
    param = uri_escape(key).replace("%3D", "=")
    if "=" not in key:
        param += "="
    return param + to_query(value)


def iter_params(params) -> Iterable[tuple]:
    if params is None:
        return []
    if isinstance(params, Mapping):
        return params.items()
    return params


def encode_query(params) -> str:
    """Encode ordered parameters into a query string (without leading ``?``)."""
    return "&".join(expand_param(key, value) for key, value in iter_params(params))


def encode_body(data) -> dict:
    return {str(key): to_body(value) for key, value in iter_params(data)}


def json_default(value):
    """``json.dumps`` hook for values nested inside body lists and maps."""
    kind = kind_of(value)
    if kind is ValueKind.MAP:
        return dict(value)
    if kind is ValueKind.LIST:
        return list(value)
    return to_body(value)
