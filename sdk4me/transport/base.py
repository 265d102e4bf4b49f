"""Abstract base for transports, and the request descriptor they send."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sdk4me.client.response import Response


@dataclass
class ApiRequest:
    method: str
    url: str  # expanded path ("/v1/people?id!=15") or absolute URL for uploads
    headers: dict = field(default_factory=dict)  # overrides, merged over the defaults
    json: dict | list | None = None
    data: dict | None = None  # multipart form fields
    files: dict | None = None  # multipart files
    default_headers: bool = True  # False for third-party endpoints (S3)


class Transport(ABC):
    """Sends a single logical request and returns a Response.

    Decorators hold an inner Transport and implement the same contract.
    """

    @abstractmethod
    def send(self, request: ApiRequest) -> "Response":
        """Send the request.

        Never raises for transport problems; those come back as an
        invalid Response with status 500.
        """
        ...

    def close(self) -> None:
        """Cleanup resources. Override if the transport holds connections."""
        pass


class TransportDecorator(Transport):
    """Base for transports that wrap another transport."""

    def __init__(self, inner: Transport):
        self.inner = inner

    def close(self) -> None:
        self.inner.close()
