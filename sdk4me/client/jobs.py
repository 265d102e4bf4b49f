"""Monitors import and export jobs until they are no longer busy."""

import time
from collections.abc import Callable
from enum import Enum

from sdk4me.client.response import Response
from sdk4me.errors import MonitoringError

POLL_INTERVAL_SECONDS = 30
RECOVERY_DELAY_SECONDS = 5


class JobState(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


BUSY_STATES = (JobState.QUEUED.value, JobState.PROCESSING.value)


class JobMonitor:
    """Polls ``/{kind}/{token}`` until the job is done or failed.

    A job in state ``error`` is returned, not raised. An invalid status
    response is retried once after a short delay; a second invalid
    response raises MonitoringError.
    """

    def __init__(
        self,
        get: Callable[..., Response],
        logger,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._get = get
        self.logger = logger
        self._sleep = sleep

    def wait(self, kind: str, token: str, description: str) -> Response:
        """Block until the job identified by ``token`` leaves the busy states.

        ``kind`` is ``import`` or ``export``; ``description`` names the job
        in log lines, e.g. ``'people.csv'``.
        """
        path = f"/{kind}/{token}"
        while True:
            response = self._get(path)
            if response.get("state") == JobState.ERROR.value:
                return response

            if not response.valid:
                self._sleep(RECOVERY_DELAY_SECONDS)
                # single retry to recover from a network error
                response = self._get(path)
                if response.get("state") == JobState.ERROR.value:
                    return response
                if not response.valid:
                    raise MonitoringError(
                        f"Unable to monitor progress for {description} {kind}. {response.message}"
                    )

            state = response.get("state")
            if state not in BUSY_STATES:
                return response

            self.logger.debug(
                "%s of %s is %s. Checking again in %d seconds.",
                kind.capitalize(), description, state, POLL_INTERVAL_SECONDS,
                extra={"audit_data": {"token": token, "state": state}},
            )
            self._sleep(POLL_INTERVAL_SECONDS)
