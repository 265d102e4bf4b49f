"""Composes the transport chain: rate limit -> retry -> HTTP."""

import time
from collections.abc import Callable

import httpx

from sdk4me.config.settings import ClientConfig
from sdk4me.transport.base import Transport
from sdk4me.transport.http import HttpTransport
from sdk4me.transport.ratelimit import RateLimitTransport
from sdk4me.transport.retry import RetryTransport


def build_transport(
    config: ClientConfig,
    http_client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Transport:
    """Build the decorated transport for a client.

    Retries happen underneath the throttle handling, so a throttled reply
    is only seen after the server responded at all.
    """
    logger = config.get_logger()
    transport: Transport = HttpTransport(config, http_client=http_client)
    transport = RetryTransport(
        transport, config.max_retry_time, logger, sleep=sleep, clock=clock,
    )
    return RateLimitTransport(
        transport, config.block_at_rate_limit, config.max_throttle_time, logger,
        sleep=sleep, clock=clock,
    )
