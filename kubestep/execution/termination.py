"""
Job termination and cleanup.

Closes the watch subscriptions, optionally deletes the job and its pods, and
releases the client, whichever way the run ended.
"""

import threading
from typing import Iterable, List

from kubestep.core.exceptions import TransportError
from kubestep.core.telemetry import get_logger, trace_span
from kubestep.execution.clients.base import ControlPlaneClient, Subscription

logger = get_logger(__name__)


class TerminationManager:
    """
    Idempotent cleanup of one run.

    Resources are only deleted once the job has been accepted by the control
    plane, so a rejected submission never deletes a job owned by another run.
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        namespace: str,
        job_name: str,
        label_selector: str,
        cleanup_on_exit: bool = True,
    ):
        self.client = client
        self.namespace = namespace
        self.job_name = job_name
        self.label_selector = label_selector
        self.cleanup_on_exit = cleanup_on_exit
        self.submitted = False

        self._lock = threading.Lock()
        self._terminated = False

    def mark_submitted(self) -> None:
        self.submitted = True

    @property
    def terminated(self) -> bool:
        return self._terminated

    @trace_span
    def terminate(self, subscriptions: Iterable[Subscription] = ()) -> None:
        """
        Close subscriptions, delete resources if requested, release the client.

        Only the first call does anything. "Not found" on delete is expected
        and ignored; any other cleanup error is logged, cleanup carries on,
        and a TransportError is raised once the client has been released.
        """
        with self._lock:
            if self._terminated:
                logger.debug(f"Job {self.job_name} already terminated")
                return
            self._terminated = True

        for subscription in subscriptions:
            subscription.close()

        errors: List[str] = []
        try:
            if self.cleanup_on_exit and self.submitted:
                errors = self._delete_resources()
            elif self.cleanup_on_exit:
                logger.info(f"Job {self.job_name} was not created, nothing to delete")
        finally:
            self.client.close()

        if errors:
            raise TransportError(
                f"Cleanup of job {self.job_name} incomplete: " + "; ".join(errors)
            )

    def _delete_resources(self) -> List[str]:
        errors: List[str] = []

        try:
            self.client.delete_job(self.namespace, self.job_name)
        except TransportError as e:
            logger.error(str(e))
            errors.append(str(e))

        # Pods are not removed with the job in every configuration
        try:
            task_names = self.client.list_tasks(self.namespace, self.label_selector)
        except TransportError as e:
            logger.error(str(e))
            errors.append(str(e))
            return errors

        for task_name in task_names:
            try:
                self.client.delete_task(self.namespace, task_name)
            except TransportError as e:
                logger.error(str(e))
                errors.append(str(e))

        return errors
