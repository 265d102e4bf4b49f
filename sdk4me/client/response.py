"""Uniform wrapper around a 4me API response."""

import json
import re

import httpx

from sdk4me.transport.base import ApiRequest

_LINK_PATTERN = '^\\s*<?(.*?)>?;\\s*rel="{relation}"\\s*$'
_ABSOLUTE_URL = re.compile(r"^https?://[^/]*(.*)")
_THROTTLED = re.compile(r"Too Many Requests")


class Response:
    """Parsed result of one HTTP exchange.

    ``json`` is a dict for single records and a list of dicts for
    collections. An invalid response always carries a ``message`` key.
    """

    def __init__(
        self,
        request: ApiRequest | None,
        status_code: int | None,
        headers: httpx.Headers | dict | None = None,
        body: str | None = None,
        reason: str = "",
        raw: httpx.Response | None = None,
    ):
        self.request = request
        self.status_code = status_code
        self.headers = httpx.Headers(headers or {})
        self.body = body
        self.reason = reason
        self.raw = raw
        self.json = self._parse()

    @classmethod
    def from_httpx(cls, request: ApiRequest, raw: httpx.Response) -> "Response":
        return cls(
            request,
            status_code=raw.status_code,
            headers=raw.headers,
            body=raw.text,
            reason=raw.reason_phrase,
            raw=raw,
        )

    @classmethod
    def no_response(cls, request: ApiRequest, message: str) -> "Response":
        """Synthetic failure used when the server could not be reached."""
        return cls(request, status_code=500, reason=message)

    @property
    def http_success(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300

    def _parse(self):
        if self.status_code == 204:
            data = {}
        elif not self.body or not self.body.strip():
            data = {"message": self.reason.strip() if self.reason and self.reason.strip() else "empty body"}
        else:
            try:
                data = json.loads(self.body)
            except ValueError as e:
                data = {"message": f"Invalid JSON - {e} for:\n{self.body}"}

        if isinstance(data, list):
            data = [_stringify_keys(item) for item in data]
        elif isinstance(data, dict):
            data = _stringify_keys(data)
        else:
            data = {"message": f"Invalid JSON - expected an object or array for:\n{self.body}"}

        # an empty OK response is not an error
        if isinstance(data, dict) and len(data) == 1 and data.get("message") == "OK":
            data = {}

        if not self.http_success and isinstance(data, dict):
            data["message"] = f"{self.status_code}: {data.get('message') or ''}"
        elif not self.http_success:
            data = {"message": f"{self.status_code}: {self.reason or 'empty body'}"}
        return data

    @property
    def message(self) -> str | None:
        """The error message in case the response is not valid."""
        if isinstance(self.json, dict):
            return self.json.get("message")
        return None

    @property
    def valid(self) -> bool:
        return self.message is None

    success = valid

    @property
    def empty(self) -> bool:
        return not self.body

    @property
    def failure(self) -> bool:
        """True when the server did not respond or responded with a 5xx."""
        if self.valid:
            return False
        return self.status_code is None or 500 <= self.status_code < 600

    @property
    def throttled(self) -> bool:
        return self.status_code == 429 or bool(self.message and _THROTTLED.search(self.message))

    @property
    def retry_after(self) -> int:
        return _to_int(self.headers.get("Retry-After"))

    def get(self, *keys):
        """Retrieve a (nested) value, per record when the JSON is a list."""
        values = self.json if isinstance(self.json, list) else [self.json]
        for key in keys:
            key = str(key)
            values = [value.get(key) if isinstance(value, dict) else None for value in values]
        return values if isinstance(self.json, list) else values[0]

    def __getitem__(self, keys):
        if isinstance(keys, tuple):
            return self.get(*keys)
        return self.get(keys)

    @property
    def size(self) -> int:
        if self.message:
            return 0
        return len(self.json) if isinstance(self.json, list) else 1

    count = size

    def __len__(self) -> int:
        return self.size

    # pagination
    @property
    def per_page(self) -> int:
        return _to_int(self.headers.get("X-Pagination-Per-Page"))

    @property
    def current_page(self) -> int:
        return _to_int(self.headers.get("X-Pagination-Current-Page"))

    @property
    def total_pages(self) -> int:
        return _to_int(self.headers.get("X-Pagination-Total-Pages"))

    @property
    def total_entries(self) -> int:
        return _to_int(self.headers.get("X-Pagination-Total-Entries"))

    def pagination_link(self, relation: str) -> str | None:
        """Full URL of the first, prev, next or last page.

        Link: <https://api.4me.com/v1/requests?page=1&per_page=25>; rel="first", <...>; rel="next"
        """
        header = self.headers.get("Link")
        if not header:
            return None
        pattern = re.compile(_LINK_PATTERN.format(relation=re.escape(relation)))
        for link in re.split(r",\s*<?", header):
            match = pattern.match(link)
            if match:
                return match.group(1)
        return None

    def pagination_relative_link(self, relation: str) -> str | None:
        """Like pagination_link, without scheme and host."""
        link = self.pagination_link(relation)
        if link is None:
            return None
        match = _ABSOLUTE_URL.match(link)
        return match.group(1) if match else link

    def __str__(self) -> str:
        return json.dumps(self.json) if self.valid else self.message

    def __repr__(self) -> str:
        return f"<Response status={self.status_code} valid={self.valid}>"


def _stringify_keys(value):
    if isinstance(value, dict):
        return {str(k): _stringify_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_stringify_keys(v) for v in value]
    return value


def _to_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
