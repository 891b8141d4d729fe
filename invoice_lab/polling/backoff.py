"""Bounded polling with a linear back-off ramp."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from invoice_lab.config.settings import Settings
from invoice_lab.extraction.exceptions import PollingCancelledError, TransportError
from invoice_lab.extraction.models import (
    CheckResult,
    Completed,
    Done,
    Failed,
    PollOutcome,
    ProviderFailed,
    TimedOut,
)
from invoice_lab.logging.logger import BoundLog, Log


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay schedule between poll attempts.

    Attempts before ``ramp_start_attempt`` wait ``base_delay``. From then on
    each attempt adds ``step``. From ``cap_from_attempt`` (if set) the delay
    is ``max_delay`` outright. No delay ever exceeds ``max_delay``.
    """

    base_delay: float = 3.0
    ramp_start_attempt: int = 5
    step: float = 1.0
    max_delay: float = 10.0
    cap_from_attempt: int | None = 9

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackoffPolicy":
        return cls(
            base_delay=settings.poll_base_delay_seconds,
            ramp_start_attempt=settings.poll_ramp_start_attempt,
            step=settings.poll_delay_step_seconds,
            max_delay=settings.poll_max_delay_seconds,
            cap_from_attempt=settings.poll_cap_from_attempt,
        )

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given 1-based attempt."""
        if self.cap_from_attempt is not None and attempt >= self.cap_from_attempt:
            return self.max_delay
        delay = self.base_delay
        if attempt >= self.ramp_start_attempt:
            delay += (attempt - self.ramp_start_attempt + 1) * self.step
        return min(delay, self.max_delay)


class BackoffPoller:
    """Invoke a check function until it finishes, fails, or the budget runs out."""

    def __init__(
        self,
        policy: BackoffPolicy,
        max_attempts: int,
        *,
        sleep: Callable[[float], None] = time.sleep,
        log: BoundLog | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._policy = policy
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._log = log or Log.bind(component="poller")

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    def poll(
        self,
        check: Callable[[], CheckResult],
        *,
        cancel_event: threading.Event | None = None,
    ) -> PollOutcome:
        """Run ``check`` up to ``max_attempts`` times.

        Transport errors raised by ``check`` count as a pending attempt.
        Exhausting the budget returns ``TimedOut`` and never raises.

        Raises:
            PollingCancelledError: if ``cancel_event`` is set between attempts.
        """
        transport_errors = 0
        last_error: str | None = None

        for attempt in range(1, self._max_attempts + 1):
            self._raise_if_cancelled(cancel_event, attempt)
            self._log.debug(f"Polling attempt {attempt}/{self._max_attempts}")
            try:
                result = check()
            except TransportError as exc:
                transport_errors += 1
                last_error = str(exc)
                self._log.warning(f"Polling attempt {attempt} failed: {exc}")
            else:
                if isinstance(result, Done):
                    self._log.info(f"Job finished after {attempt} attempt(s)")
                    return Completed(payload=result.payload, attempts=attempt)
                if isinstance(result, Failed):
                    self._log.error(f"Back-end reported failure: {result.reason}")
                    return ProviderFailed(reason=result.reason, attempts=attempt)

            if attempt < self._max_attempts:
                delay = self._policy.delay(attempt)
                self._log.debug(f"Still pending, waiting {delay:.1f}s")
                self._wait(delay, cancel_event, attempt)

        self._log.warning(
            f"Gave up after {self._max_attempts} attempts "
            f"({transport_errors} transport error(s))"
        )
        return TimedOut(
            attempts=self._max_attempts,
            transport_errors=transport_errors,
            last_error=last_error,
        )

    def _wait(
        self,
        delay: float,
        cancel_event: threading.Event | None,
        attempt: int,
    ) -> None:
        if cancel_event is None:
            self._sleep(delay)
            return
        if cancel_event.wait(delay):
            self._raise_if_cancelled(cancel_event, attempt)

    @staticmethod
    def _raise_if_cancelled(cancel_event: threading.Event | None, attempt: int) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise PollingCancelledError(f"Polling cancelled at attempt {attempt}")
