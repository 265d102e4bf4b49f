"""Uploads attachments referenced in the data of a write request.

Field attachments are given as a list of file paths or open files:

    data = {"note": "See attached", "note_attachments": ["/tmp/test.doc", "/tmp/test.log"]}

Rich text may refer to an image in its own attachments list by its
zero-based index:

    data = {
        "note": "Hello [note_attachments: 0] and [note_attachments: 1]",
        "note_attachments": ["/tmp/jip.png", "/tmp/janneke.png"],
    }

After uploading, the data that is posted to 4me looks like:

    data = {
        "note": "Hello ![](storage/abc/jip.png) and ![](storage/abc/janneke.png)",
        "note_attachments": [
            {"key": "storage/abc/jip.png", "filesize": 12345, "inline": True},
            {"key": "storage/abc/janneke.png", "filesize": 98765, "inline": True},
        ],
    }
"""

import mimetypes
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from sdk4me.client.response import Response
from sdk4me.errors import UploadFailedError
from sdk4me.transport.base import ApiRequest

if TYPE_CHECKING:
    from sdk4me.client.client import Client

S3_PROVIDER = "s3"
LOCAL_PROVIDER = "local"
PROVIDERS = (S3_PROVIDER, LOCAL_PROVIDER)
FILENAME_TEMPLATE = "${filename}"
ATTACHMENTS_SUFFIX = "_attachments"
RAISE_EXCEPTIONS_FLAG = "attachments_exception"
STORAGE_PATH = "/attachments/storage"
DEFAULT_FILENAME = "attachment"

_S3_ERROR = re.compile(r"<Error>.*<Message>(.*)</Message>.*</Error>", re.DOTALL)


class UploadState(Enum):
    NO_ATTACHMENTS = "no_attachments"
    STORAGE_UNKNOWN = "storage_unknown"
    STORAGE_RESOLVED = "storage_resolved"
    PER_FILE_UPLOADING = "per_file_uploading"
    INLINE_REWRITING = "inline_rewriting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class StorageDescriptor:
    provider: str
    upload_uri: str
    fields: dict = field(default_factory=dict)  # posted verbatim with the file

    @classmethod
    def from_response(cls, response: Response) -> "StorageDescriptor | None":
        if not response.valid or not isinstance(response.json, dict):
            return None
        provider = response.get("provider")
        upload_uri = response.get("upload_uri")
        if not provider or not upload_uri:
            return None
        return cls(provider=provider, upload_uri=upload_uri, fields=dict(response.get(provider) or {}))

    @property
    def key_template(self) -> str:
        return self.fields.get("key") or FILENAME_TEMPLATE


class AttachmentUploader:
    """Uploads the attachments of a single write call.

    The storage descriptor is fetched at most once and shared by all
    attachment fields of that call.
    """

    def __init__(self, client: "Client", path: str):
        self.client = client
        self.path = path
        self.logger = client.logger
        self.state = UploadState.NO_ATTACHMENTS
        self._storage: StorageDescriptor | None = None

    def upload_attachments(self, data: dict) -> None:
        """Upload all attachments in ``data`` and replace them in place.

        Per-file failures are logged and the file dropped, unless
        ``attachments_exception: True`` is part of the data. Missing
        storage configuration always raises UploadFailedError.
        """
        raise_exceptions = bool(data.pop(RAISE_EXCEPTIONS_FLAG, False))

        uploaded: dict[str, dict[int, dict]] = {}
        for name, value in list(data.items()):
            if not str(name).endswith(ATTACHMENTS_SUFFIX) or not _has_attachments(value):
                continue
            if self.state is UploadState.NO_ATTACHMENTS:
                self.state = UploadState.STORAGE_UNKNOWN

            entries = {}
            for index, attachment in enumerate(value):
                if attachment is None:
                    continue
                details = self.upload_attachment(attachment, raise_exceptions)
                if details is not None:
                    entries[index] = details
            data[name] = list(entries.values())
            uploaded[name] = entries

        if uploaded:
            self.state = UploadState.INLINE_REWRITING
            self._rewrite_inline(data, uploaded)
            self.state = UploadState.DONE

    def _rewrite_inline(self, data: dict, uploaded: dict[str, dict[int, dict]]) -> None:
        for name, entries in uploaded.items():
            text_field = name[: -len(ATTACHMENTS_SUFFIX)]
            text = data.get(text_field)
            if not isinstance(text, str):
                continue
            pattern = re.compile(rf"\[{re.escape(name)}:\s?(\d+)\]")

            def replace(match, entries=entries):
                details = entries.get(int(match.group(1)))
                if details is None:
                    return match.group(0)
                details["inline"] = True
                return f"![]({details['key']})"  # markdown for inline attachments

            data[text_field] = pattern.sub(replace, text)

    def storage(self) -> StorageDescriptor:
        """Retrieve the upload configuration from 4me (once per call)."""
        if self._storage is None:
            response = self.client.get(STORAGE_PATH)
            storage = StorageDescriptor.from_response(response)
            if storage is None or storage.provider not in PROVIDERS:
                self.state = UploadState.FAILED
                message = f"Attachments not allowed for {self.path}"
                if not response.valid:
                    message = f"{message}: {response.message}"
                elif storage is not None:
                    message = f"{message}: unsupported storage provider {storage.provider}"
                self.logger.error(message)
                raise UploadFailedError(message)
            self._storage = storage
            self.state = UploadState.STORAGE_RESOLVED
        return self._storage

    def upload_attachment(self, attachment, raise_exceptions: bool = False) -> dict | None:
        """Upload a single attachment and return ``{key, filesize}``.

        ``attachment`` is a path or a file-like object with ``read``.
        Returns None after logging the error when the upload failed and
        ``raise_exceptions`` is not set.
        """
        storage = self.storage()
        self.state = UploadState.PER_FILE_UPLOADING
        try:
            handle, opened = _open(attachment)
            try:
                filename = _file_name(handle)
                key = storage.key_template.replace(FILENAME_TEMPLATE, filename)
                filesize = _file_size(handle)
                if storage.provider == S3_PROVIDER:
                    self._s3_upload(storage, handle, filename, key)
                else:
                    self._local_upload(storage, handle, filename, key)
                return {"key": key, "filesize": filesize}
            finally:
                if opened:
                    handle.close()
        except (UploadFailedError, OSError, ValueError) as e:
            self._report_error(f"Attachment upload failed: {e}", raise_exceptions)
            return None

    def _report_error(self, message: str, raise_exceptions: bool) -> None:
        self.logger.error(message)
        if raise_exceptions:
            self.state = UploadState.FAILED
            raise UploadFailedError(message)

    def _s3_upload(self, storage: StorageDescriptor, handle, filename: str, key: str) -> None:
        response = self._send_file(storage.upload_uri, storage.fields, handle, filename, default_headers=False)
        # S3 answers with XML only
        match = _S3_ERROR.search(response.body or "")
        if match:
            raise UploadFailedError(f"AWS S3 upload to {storage.upload_uri} for {key} failed: {match.group(1)}")
        if response.status_code is None or response.status_code >= 400:
            raise UploadFailedError(f"AWS S3 upload to {storage.upload_uri} for {key} failed: {response.message}")

    def _local_upload(self, storage: StorageDescriptor, handle, filename: str, key: str) -> None:
        uri = storage.upload_uri
        if not re.search(r"/v[\d.]+/", uri):
            uri = uri.replace("/attachments", f"/{self.client.config.api_version}/attachments")
        response = self._send_file(uri, storage.fields, handle, filename, default_headers=True)
        if not response.valid:
            raise UploadFailedError(f"4me upload to {storage.upload_uri} for {key} failed: {response.message}")

    def _send_file(self, uri: str, fields: dict, handle, filename: str, default_headers: bool) -> Response:
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        form = {"Content-Type": content_type}
        form.update({name: str(value) for name, value in fields.items()})
        request = ApiRequest(
            method="POST",
            url=uri,
            data=form,
            files={"file": (filename, handle, content_type)},
            default_headers=default_headers,
        )
        return self.client.transport.send(request)


def _has_attachments(value) -> bool:
    return isinstance(value, (list, tuple)) and any(item is not None for item in value)


def _open(attachment):
    """Return ``(handle, opened)``; paths are opened from disk."""
    if hasattr(attachment, "read"):
        return attachment, False
    if not isinstance(attachment, (str, bytes, os.PathLike)):
        raise UploadFailedError(f"not a file or file path: {attachment!r}")
    path = os.fsdecode(attachment)
    if not os.path.isfile(path):
        raise UploadFailedError(f"file does not exist: {path}")
    return open(path, "rb"), True


def _file_name(handle) -> str:
    name = getattr(handle, "name", None)
    if isinstance(name, (str, bytes, os.PathLike)):
        return os.path.basename(os.fsdecode(name)) or DEFAULT_FILENAME
    return DEFAULT_FILENAME


def _file_size(handle) -> int:
    name = getattr(handle, "name", None)
    if isinstance(name, (str, bytes, os.PathLike)) and os.path.isfile(name):
        return os.path.getsize(name)
    if not hasattr(handle, "seek"):
        raise UploadFailedError(f"unable to determine the size of {_file_name(handle)}")
    # in-memory streams
    position = handle.tell()
    size = handle.seek(0, os.SEEK_END)
    handle.seek(position)
    return size - position
