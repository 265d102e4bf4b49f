"""4me REST API client.

Shared configuration for all clients comes from the environment
(``SDK4ME_ACCESS_TOKEN``, ``SDK4ME_ACCOUNT``, ...), see Settings.
Override it per client:

    client = Client(account="trusted-sandbox")
    response = client.get("people", {"primary_email": "john@example.com"})
    if response.valid:
        print(response["name"])
"""

import os
import re
import time
from collections.abc import Callable, Iterator

import httpx

from sdk4me.client.attachments import AttachmentUploader
from sdk4me.client.jobs import JobMonitor
from sdk4me.client.pagination import MAX_PAGE_SIZE, PaginationWalker
from sdk4me.client.params import encode_body, encode_query
from sdk4me.client.response import Response
from sdk4me.config.settings import ClientConfig, Settings
from sdk4me.errors import UploadFailedError
from sdk4me.transport.base import ApiRequest, Transport
from sdk4me.transport.factory import build_transport

_VERSIONED_PATH = re.compile(r"^/v[\d.]+/")


class Client:
    MAX_PAGE_SIZE = MAX_PAGE_SIZE

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.Client | None = None,
        transport: Transport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        **options,
    ):
        """Create a client; ``options`` override the global settings.

        Args:
            settings: Global defaults, ``get_settings()`` when omitted.
            http_client: httpx client to send requests with (tests, custom pooling).
            transport: Fully custom transport chain, bypasses retry/throttle setup.
            sleep: Sleep primitive used for backoff and polling.
            clock: Monotonic clock used for the retry and throttle budgets.
        """
        self.config = ClientConfig.build(settings, **options)
        self.logger = self.config.get_logger()
        self._sleep = sleep
        self.transport = transport or build_transport(
            self.config, http_client=http_client, sleep=sleep, clock=clock,
        )

    def option(self, key: str):
        return getattr(self.config, key)

    # --- requests ---

    def get(self, path: str, params=None, headers: dict | None = None) -> Response:
        """Send a GET request and return the Response."""
        return self.transport.send(ApiRequest("GET", self.expand_path(path, params), dict(headers or {})))

    def delete(self, path: str, params=None, headers: dict | None = None) -> Response:
        return self.transport.send(ApiRequest("DELETE", self.expand_path(path, params), dict(headers or {})))

    def post(self, path: str, data=None, headers: dict | None = None) -> Response:
        """Send a POST request; attachments in ``data`` are uploaded first."""
        return self.transport.send(self._json_request("POST", path, data, headers))

    def patch(self, path: str, data=None, headers: dict | None = None) -> Response:
        return self.transport.send(self._json_request("PATCH", path, data, headers))

    def put(self, path: str, data=None, headers: dict | None = None) -> Response:
        return self.transport.send(self._json_request("PUT", path, data, headers))

    def _json_request(self, method: str, path: str, data, headers: dict | None) -> ApiRequest:
        data = dict(data or {})
        AttachmentUploader(self, path).upload_attachments(data)
        return ApiRequest(method, self.expand_path(path), dict(headers or {}), json=encode_body(data))

    # --- collections ---

    def iter_records(self, path: str, params=None, headers: dict | None = None) -> Iterator[dict]:
        """Yield all records of a (paged) collection, one page at a time."""
        return PaginationWalker(self.get).iter_records(path, params, headers)

    def each(
        self,
        path: str,
        params=None,
        headers: dict | None = None,
        visit: Callable[[dict], None] | None = None,
    ) -> int:
        """Call ``visit`` for every record of a (paged) collection.

        Raises PaginationError when a page is invalid. Returns the number
        of records visited.
        """
        return PaginationWalker(self.get).each(path, params, headers, visit)

    # --- import / export ---

    def import_csv(self, csv, type: str, block_until_completed: bool = False) -> Response:
        """Upload a CSV file to import.

        Args:
            csv: An open file or the location of the CSV file.
            type: The import type, e.g. ``people`` or ``people_contact_details``.
            block_until_completed: Wait for the import to finish.

        Raises:
            UploadFailedError: The file was not accepted and ``block_until_completed`` is set.
            MonitoringError: The import progress could not be monitored.
        """
        opened = not hasattr(csv, "read")
        handle = open(csv, "rb") if opened else csv
        try:
            name = getattr(handle, "name", "import.csv")
            request = ApiRequest(
                "POST",
                self.expand_path("/import"),
                data={"type": type},
                files={"file": (os.path.basename(name), handle, "text/csv")},
            )
            response = self.transport.send(request)
        finally:
            if opened:
                handle.close()

        if response.valid:
            self.logger.info(
                "Import file '%s' successfully uploaded with token '%s'.", name, response["token"],
            )

        if block_until_completed:
            if not response.valid:
                raise UploadFailedError(f"Failed to queue {type} import. {response.message}")
            response = self._monitor().wait("import", response["token"], f"'{name}'")
        return response

    def export(
        self,
        types,
        from_=None,
        block_until_completed: bool = False,
        locale: str | None = None,
    ) -> Response:
        """Export CSV files.

        Args:
            types: The types to export, e.g. ``people`` or ``["people", "organizations"]``.
            from_: Only export records changed since this date and time.
            block_until_completed: Wait for the export to finish.
            locale: Required for translations exports.

        Raises:
            UploadFailedError: The export was not queued and ``block_until_completed`` is set.
            MonitoringError: The export progress could not be monitored.
        """
        type_list = [types] if isinstance(types, str) else list(types)
        data = {"type": ",".join(type_list)}
        if from_:
            data["from"] = from_
        if locale:
            data["locale"] = locale

        response = self.post("/export", data)
        if response.valid:
            if response.status_code == 204:
                self.logger.info(
                    "No changed records for '%s' since %s.", data["type"], encode_body(data).get("from"),
                )
                return response
            self.logger.info(
                "Export for '%s' successfully queued with token '%s'.", data["type"], response["token"],
            )

        if block_until_completed:
            if not response.valid:
                raise UploadFailedError(f"Failed to queue '{data['type']}' export. {response.message}")
            response = self._monitor().wait("export", response["token"], f"'{data['type']}'")
        return response

    def _monitor(self) -> JobMonitor:
        return JobMonitor(self.get, self.logger, sleep=self._sleep)

    # --- helpers ---

    def expand_path(self, path: str, params=None) -> str:
        """Prefix the API version and append the encoded parameters.

        expand_path("people?id!=15", {"primary_email": "me@example.com"})
        -> "/v1/people?id!=15&primary_email=me%40example%2Ecom"
        """
        if not path.startswith("/"):
            path = f"/{path}"
        if not _VERSIONED_PATH.match(path):
            path = f"/{self.config.api_version}{path}"
        query = encode_query(params)
        if query:
            path += ("&" if "?" in path else "?") + query
        return path

    def close(self) -> None:
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
