"""
Job lifecycle watching.

Two subscriptions filtered by the same correlation label run concurrently:
- the workload stream releases the completion signal on the first
  ``Complete`` or ``Failed`` condition
- the task stream forwards the output of every task reaching a terminal
  phase to the output logger

The caller blocks on the completion signal only.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, List, Optional, Set, Tuple

from kubestep.core.constants import (
    CONDITION_COMPLETE,
    CONDITION_FAILED,
    DEADLINE_EXCEEDED_REASON,
    RunStatus,
    StreamKind,
    TASK_PHASE_FAILED,
    TASK_PHASE_SUCCEEDED,
)
from kubestep.core.exceptions import TransportError
from kubestep.core.telemetry import get_logger
from kubestep.execution.clients.base import ControlPlaneClient, Subscription
from kubestep.execution.outcome import RunOutcome

logger = get_logger(__name__)

TASK_OUTPUT_LOGGER = "kubestep.task_output"


@dataclass(frozen=True)
class LifecycleObservation:
    """One event received from either stream."""

    stream_kind: StreamKind
    action: str
    resource: Any


class CompletionSignal:
    """
    Single-fire gate between the event threads and the waiting caller.

    Only the first release (or interruption) counts; later calls are no-ops.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._condition: Any = None
        self._interrupted = False

    def release(self, condition: Any) -> bool:
        """Record the terminal condition and wake the caller, once."""
        with self._lock:
            if self._event.is_set():
                return False
            self._condition = condition
            self._event.set()
            return True

    def interrupt(self) -> bool:
        """Wake the caller without a terminal condition."""
        with self._lock:
            if self._event.is_set():
                return False
            self._interrupted = True
            self._event.set()
            return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    @property
    def released(self) -> bool:
        return self._event.is_set()

    @property
    def condition(self) -> Any:
        with self._lock:
            return self._condition

    @property
    def interrupted(self) -> bool:
        with self._lock:
            return self._interrupted


def find_terminal_condition(job: Any) -> Optional[Any]:
    """Return the first true ``Complete`` or ``Failed`` condition of a job."""
    status = getattr(job, "status", None)
    for condition in getattr(status, "conditions", None) or []:
        if condition.type not in (CONDITION_COMPLETE, CONDITION_FAILED):
            continue
        if condition.status and condition.status.lower() != "true":
            continue
        return condition
    return None


def is_deadline_reason(reason: Optional[str]) -> bool:
    """
    Whether a condition reason says the job ran past its deadline.

    Kubernetes reports ``DeadlineExceeded``; other deadline reasons are
    recognized by the ``Deadline`` substring.
    """
    if not reason:
        return False
    return reason == DEADLINE_EXCEEDED_REASON or "Deadline" in reason


def classify_condition(condition: Any) -> RunOutcome:
    """Map a terminal job condition to a run outcome."""
    reason = condition.reason
    reason_text = reason or condition.type
    if condition.message:
        reason_text = f"{reason_text}: {condition.message}"

    if condition.type == CONDITION_COMPLETE:
        status = RunStatus.SUCCEEDED
    elif is_deadline_reason(reason):
        status = RunStatus.TIMED_OUT
    else:
        status = RunStatus.FAILED

    return RunOutcome(
        status=status,
        reason_text=reason_text,
        completion_condition_reason=reason,
    )


class LifecycleWatcher:
    """Follows one job and its tasks until the job reaches a terminal condition."""

    def __init__(
        self,
        client: ControlPlaneClient,
        namespace: str,
        label_selector: str,
        output_logger: Optional[logging.Logger] = None,
    ):
        self.client = client
        self.namespace = namespace
        self.label_selector = label_selector
        self.output_logger = output_logger or get_logger(TASK_OUTPUT_LOGGER)
        self.signal = CompletionSignal()
        self.subscriptions: List[Subscription] = []
        # Only touched from the task stream thread
        self._forwarded: Set[Tuple[str, str]] = set()

    def start(self) -> None:
        """Open the workload and task subscriptions."""
        self.subscriptions.append(
            self.client.watch(
                StreamKind.WORKLOAD,
                self.namespace,
                self.label_selector,
                self._on_workload_event,
            )
        )
        self.subscriptions.append(
            self.client.watch(
                StreamKind.TASK,
                self.namespace,
                self.label_selector,
                self._on_task_event,
            )
        )
        logger.info(f"Watching jobs and pods matching {self.label_selector}")

    def wait(self, timeout: Optional[float] = None) -> RunOutcome:
        """
        Block until the job finishes, the timeout elapses or the wait is
        interrupted.

        Args:
            timeout: Seconds to wait, None to wait indefinitely

        Returns:
            RunOutcome classified from the terminal condition, or TimedOut /
            Interrupted when none arrived
        """
        try:
            released = self.signal.wait(timeout)
        except KeyboardInterrupt:
            self.signal.interrupt()
            released = True

        if self.signal.interrupted:
            return RunOutcome(
                status=RunStatus.INTERRUPTED,
                reason_text="Interrupted while waiting for the job to finish",
            )
        if not released:
            return RunOutcome(
                status=RunStatus.TIMED_OUT,
                reason_text=f"No terminal condition within {timeout} seconds",
            )
        return classify_condition(self.signal.condition)

    def watch(self, timeout: Optional[float] = None) -> RunOutcome:
        self.start()
        return self.wait(timeout)

    def interrupt(self) -> None:
        if self.signal.interrupt():
            logger.warning(f"Interrupted watch of {self.label_selector}")

    def close(self) -> None:
        for subscription in self.subscriptions:
            subscription.close()

    def _on_workload_event(self, action: str, resource: Any) -> None:
        self.handle_workload_event(
            LifecycleObservation(StreamKind.WORKLOAD, action, resource)
        )

    def _on_task_event(self, action: str, resource: Any) -> None:
        self.handle_task_event(LifecycleObservation(StreamKind.TASK, action, resource))

    def handle_workload_event(self, observation: LifecycleObservation) -> None:
        condition = find_terminal_condition(observation.resource)
        if condition is None:
            return
        if self.signal.release(condition):
            logger.info(
                f"Job {observation.resource.metadata.name} reached condition "
                f"{condition.type} ({condition.reason})"
            )

    def handle_task_event(self, observation: LifecycleObservation) -> None:
        """Forward the output of a task that just succeeded or failed."""
        pod = observation.resource
        name = pod.metadata.name
        phase = pod.status.phase if pod.status else None

        if phase == TASK_PHASE_SUCCEEDED and pod.metadata.deletion_timestamp is None:
            level = logging.INFO
        elif phase == TASK_PHASE_FAILED:
            level = logging.ERROR
        else:
            return

        # Repeated MODIFIED events for a finished pod carry the same output
        if (name, phase) in self._forwarded:
            return
        self._forwarded.add((name, phase))

        try:
            output = self.client.read_task_log(self.namespace, name)
        except TransportError as e:
            logger.warning(f"Could not fetch output of pod {name}: {e}")
            return
        self.output_logger.log(level, f"{name} : {output}")
