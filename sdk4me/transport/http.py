"""Transport core: sends one HTTP request to 4me with httpx."""

import base64
import json
import os
import re
import ssl

import httpx

from sdk4me.client.params import json_default
from sdk4me.client.response import Response
from sdk4me.config.settings import ClientConfig
from sdk4me.errors import ConfigurationError
from sdk4me.logging.setup import RequestTimer
from sdk4me.transport.base import ApiRequest, Transport
from sdk4me.version import VERSION

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "User-Agent": f"4me-sdk-python/{VERSION}",
}

_XML_BODY = re.compile(r"^\s*<\?xml", re.IGNORECASE)


class HttpTransport(Transport):
    """Builds headers, sends the request and wraps the result.

    Transport problems (DNS, connect, timeouts) never escape: they are
    turned into a Response with status 500.
    """

    def __init__(self, config: ClientConfig, http_client: httpx.Client | None = None):
        self.config = config
        self.logger = config.get_logger()
        self._client = http_client

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=httpx.Timeout(float(self.config.read_timeout), connect=10.0),
                proxy=self.config.proxy_url,
                verify=self._verify(),
            )
        return self._client

    def _verify(self) -> ssl.SSLContext | bool:
        if self.config.ssl_verify_none:
            return False
        if self.config.ca_file:
            if not os.path.isfile(self.config.ca_file):
                raise ConfigurationError(f"CA file not found: {self.config.ca_file}")
            return ssl.create_default_context(cafile=self.config.ca_file)
        return True

    def build_headers(self, overrides: dict | None = None) -> dict:
        """Default 4me headers merged with the caller's overrides (overrides win)."""
        headers = dict(DEFAULT_HEADERS)
        if self.config.account:
            headers["X-4me-Account"] = self.config.account
        headers["Authorization"] = self._authorization()
        if self.config.source:
            headers["X-4me-Source"] = self.config.source
        if self.config.user_agent:
            headers["User-Agent"] = self.config.user_agent
        headers.update(overrides or {})
        return headers

    def _authorization(self) -> str:
        if self.config.access_token:
            return f"Bearer {self.config.access_token}"
        token = self.config.api_token
        token_and_password = token if ":" in token else f"{token}:x"
        return "Basic " + base64.b64encode(token_and_password.encode()).decode()

    def url_for(self, request: ApiRequest) -> str:
        if re.match(r"^https?://", request.url):
            return request.url
        return f"{self.config.host.rstrip('/')}{request.url}"

    def send(self, request: ApiRequest) -> Response:
        url = self.url_for(request)
        target = _target(url)
        if request.default_headers:
            headers = self.build_headers(request.headers)
        else:
            headers = dict(request.headers)
        if request.files:
            # httpx sets the multipart boundary
            headers.pop("Content-Type", None)
        content = None
        if request.json is not None:
            content = json.dumps(request.json, default=json_default).encode()

        self.logger.debug(
            "Sending %s request to %s", request.method, target,
            extra={"audit_data": {"method": request.method, "url": url}},
        )
        with RequestTimer() as timer:
            try:
                raw = self._get_client().request(
                    request.method,
                    url,
                    headers=headers,
                    content=content,
                    data=request.data,
                    files=request.files,
                )
                response = Response.from_httpx(request, raw)
            except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
                response = Response.no_response(
                    request, f"No Response from Server - {e} for '{target}'"
                )
        self._log_outcome(request, target, response, timer.elapsed_ms)
        return response

    def _log_outcome(self, request: ApiRequest, target: str, response: Response, latency_ms: float) -> None:
        audit_data = {
            "method": request.method,
            "status": response.status_code,
            "latency_ms": latency_ms,
        }
        if response.valid:
            self.logger.debug(
                "Response:\n%s", _LazyJSON(response.json), extra={"audit_data": audit_data},
            )
        elif response.body and _XML_BODY.match(response.body):
            self.logger.debug("XML response:\n%s", response.body, extra={"audit_data": audit_data})
        elif response.status_code == 303:
            self.logger.debug(
                "Redirect: %s", response.headers.get("Location"), extra={"audit_data": audit_data},
            )
        else:
            self.logger.error(
                "%s request to %s failed: %s", request.method, target, response.message,
                extra={"audit_data": audit_data},
            )

    def close(self) -> None:
        if self._client and not self._client.is_closed:
            self._client.close()
            self._client = None


class _LazyJSON:
    """Pretty-prints JSON only when the log record is rendered."""

    def __init__(self, value):
        self.value = value

    def __str__(self) -> str:
        return json.dumps(self.value, indent=2)


def _target(url: str) -> str:
    """Render a URL as ``domain:port/path?query`` for log lines."""
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return url
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    path = parsed.raw_path.decode("ascii", errors="replace")
    return f"{parsed.host}:{port}{path}"
