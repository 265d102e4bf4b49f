"""Retries requests when the server does not respond or returns a 5xx.

The sleep between attempts starts at 2 seconds and doubles after each
retry (2, 4, 8, 16, ...). A retry is only scheduled while the time spent
since the first attempt plus the next sleep stays below the budget, so the
last attempt made is returned as-is.
"""

import time
from collections.abc import Callable

from tenacity import RetryCallState, Retrying, retry_if_result, wait_exponential

from sdk4me.client.response import Response
from sdk4me.transport.base import ApiRequest, Transport, TransportDecorator

INITIAL_SLEEP_SECONDS = 2


def stop_before_budget(clock: Callable[[], float], started: float, budget: float):
    """Stop when the upcoming sleep would end at or beyond ``budget`` seconds."""

    def _stop(retry_state: RetryCallState) -> bool:
        return clock() - started + retry_state.upcoming_sleep >= budget

    return _stop


def last_response(retry_state: RetryCallState) -> Response:
    return retry_state.outcome.result()


class RetryTransport(TransportDecorator):

    def __init__(
        self,
        inner: Transport,
        max_retry_time: int,
        logger,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(inner)
        self.max_retry_time = max_retry_time
        self.logger = logger
        self._sleep = sleep
        self._clock = clock

    def send(self, request: ApiRequest) -> Response:
        if self.max_retry_time < 0:
            return self.inner.send(request)

        retrying = Retrying(
            retry=retry_if_result(lambda response: response.failure),
            wait=wait_exponential(multiplier=INITIAL_SLEEP_SECONDS),
            stop=stop_before_budget(self._clock, self._clock(), self.max_retry_time),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            retry_error_callback=last_response,
        )
        return retrying(self.inner.send, request)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        sleep_time = retry_state.next_action.sleep
        self.logger.warning(
            "Request failed, retry #%d in %d seconds: %s",
            retry_state.attempt_number, sleep_time, retry_state.outcome.result().message,
            extra={"audit_data": {"attempt": retry_state.attempt_number, "sleep_seconds": sleep_time}},
        )
