"""Blocks and retries requests that were throttled by 4me (HTTP 429).

Only active when ``block_at_rate_limit`` is set and the throttle budget is
positive. The wait honours ``Retry-After`` with a minimum of 2 seconds;
without that header the server is very busy and we wait 5 minutes.
"""

import time
from collections.abc import Callable

from tenacity import RetryCallState, Retrying, retry_if_result

from sdk4me.client.response import Response
from sdk4me.transport.base import ApiRequest, Transport, TransportDecorator
from sdk4me.transport.retry import last_response, stop_before_budget

MIN_WAIT_SECONDS = 2
BUSY_WAIT_SECONDS = 300


class RateLimitTransport(TransportDecorator):

    def __init__(
        self,
        inner: Transport,
        block_at_rate_limit: bool,
        max_throttle_time: int,
        logger,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(inner)
        self.block_at_rate_limit = block_at_rate_limit
        self.max_throttle_time = max_throttle_time
        self.logger = logger
        self._sleep = sleep
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self.block_at_rate_limit and self.max_throttle_time > 0

    def send(self, request: ApiRequest) -> Response:
        if not self.enabled:
            return self.inner.send(request)

        retrying = Retrying(
            retry=retry_if_result(lambda response: response.throttled),
            wait=wait_for_rate_limit,
            stop=stop_before_budget(self._clock, self._clock(), self.max_throttle_time),
            sleep=self._sleep,
            before_sleep=self._log_throttle,
            retry_error_callback=last_response,
        )
        return retrying(self.inner.send, request)

    def _log_throttle(self, retry_state: RetryCallState) -> None:
        response = retry_state.outcome.result()
        wait = retry_state.next_action.sleep
        self.logger.warning(
            "Request throttled, trying again in %d seconds: %s", wait, response.message,
            extra={"audit_data": {"sleep_seconds": wait, "status": response.status_code}},
        )


def wait_seconds(response: Response) -> int:
    retry_after = response.retry_after
    if retry_after <= 0:
        return BUSY_WAIT_SECONDS
    return max(retry_after, MIN_WAIT_SECONDS)


def wait_for_rate_limit(retry_state: RetryCallState) -> int:
    return wait_seconds(retry_state.outcome.result())
