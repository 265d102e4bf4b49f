"""SDK settings loaded from environment variables, and the per-client config."""

import dataclasses
import logging
import warnings
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlsplit

from pydantic_settings import BaseSettings

from sdk4me.errors import ConfigurationError


class Settings(BaseSettings):
    # 4me REST API
    host: str = "https://api.4me.com"
    api_version: str = "v1"

    # Credentials, exactly one of them must be set
    access_token: str = ""
    api_token: str = ""  # deprecated, basic auth

    account: str = ""  # trusted account to work with
    source: str = ""  # X-4me-Source for created records
    user_agent: str = ""

    # Reliability
    max_retry_time: int = 5400  # seconds, -1 disables retries
    read_timeout: int = 25
    block_at_rate_limit: bool = False
    max_throttle_time: int = 3660

    # Proxy
    proxy_host: str = ""
    proxy_port: int = 8080
    proxy_user: str = ""
    proxy_password: str = ""

    # TLS
    ca_file: str = ""  # Empty = httpx default bundle

    # Logging
    log_level: str = "INFO"
    log_file: str = ""  # Empty = stdout only

    model_config = {
        "env_prefix": "SDK4ME_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()


@dataclass(frozen=True)
class ClientConfig:
    """Resolved, immutable options of a single Client."""

    host: str = "https://api.4me.com"
    api_version: str = "v1"
    access_token: str = ""
    api_token: str = ""
    account: str = ""
    source: str = ""
    user_agent: str = ""
    max_retry_time: int = 5400
    read_timeout: int = 25
    block_at_rate_limit: bool = False
    max_throttle_time: int = 3660
    proxy_host: str = ""
    proxy_port: int = 8080
    proxy_user: str = ""
    proxy_password: str = ""
    ca_file: str = ""
    ssl_verify_none: bool = False
    logger: logging.Logger | None = None

    @classmethod
    def build(cls, settings: Settings | None = None, **overrides) -> "ClientConfig":
        """Merge the global settings with per-client overrides (overrides win)."""
        settings = settings or get_settings()
        names = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(overrides) - names)
        if unknown:
            raise ConfigurationError(f"Unknown configuration option {unknown[0]}")

        values = {name: getattr(settings, name) for name in names if hasattr(settings, name)}
        values.update(overrides)
        config = cls(**values)
        config.validate()
        return config

    def validate(self) -> None:
        for required in ("host", "api_version"):
            if not getattr(self, required):
                raise ConfigurationError(f"Missing required configuration option {required}")
        if self.access_token and self.api_token:
            raise ConfigurationError("Configure either access_token or api_token, not both")
        if not self.access_token:
            if not self.api_token:
                raise ConfigurationError("Missing required configuration option access_token")
            message = (
                "DEPRECATED: Use of api_token is deprecated, switch to using access_token instead."
                " -- https://developer.4me.com/v1/#authentication"
            )
            warnings.warn(message, DeprecationWarning, stacklevel=3)
            self.get_logger().info(message)

    def get_logger(self) -> logging.Logger:
        if self.logger is not None:
            return self.logger
        from sdk4me.logging.setup import get_logger
        return get_logger()

    @property
    def ssl(self) -> bool:
        return urlsplit(self.host).scheme == "https"

    @property
    def domain(self) -> str:
        return urlsplit(self.host).hostname or ""

    @property
    def port(self) -> int:
        return urlsplit(self.host).port or (443 if self.ssl else 80)

    @property
    def proxy_url(self) -> str | None:
        """Proxy URL for httpx, or None when no proxy host is configured."""
        if not self.proxy_host:
            return None
        credentials = ""
        if self.proxy_user:
            credentials = f"{self.proxy_user}:{self.proxy_password}@"
        host = self.proxy_host if "://" in self.proxy_host else f"http://{self.proxy_host}"
        scheme, rest = host.split("://", 1)
        return f"{scheme}://{credentials}{rest}:{self.proxy_port}"
