"""
A single job run: submit, watch, clean up.

JobRun is a context manager; leaving the block terminates the run whether it
ended normally, by exception or by interruption.
"""

import logging
from typing import Any, Dict, Optional

from kubestep.core.constants import JOB_NAME_LABEL, LABEL_KV_SEPARATOR, RunStatus
from kubestep.core.exceptions import TransportError
from kubestep.core.telemetry import get_logger, log_span_event
from kubestep.execution.clients.base import ControlPlaneClient
from kubestep.execution.job_spec import JobDescriptor
from kubestep.execution.outcome import RunOutcome
from kubestep.execution.termination import TerminationManager
from kubestep.execution.watcher import LifecycleWatcher

logger = get_logger(__name__)


class JobRun:
    """Owns the client, watcher and terminator of one run."""

    def __init__(
        self,
        descriptor: JobDescriptor,
        manifest: Dict[str, Any],
        client: ControlPlaneClient,
        output_logger: Optional[logging.Logger] = None,
    ):
        self.descriptor = descriptor
        self.manifest = manifest
        self.client = client
        self.label_selector = f"{JOB_NAME_LABEL}{LABEL_KV_SEPARATOR}{descriptor.name}"
        self.watcher = LifecycleWatcher(
            client, descriptor.namespace, self.label_selector, output_logger
        )
        self.terminator = TerminationManager(
            client,
            descriptor.namespace,
            descriptor.name,
            self.label_selector,
            descriptor.cleanup_on_exit,
        )
        self.outcome: Optional[RunOutcome] = None

    def __enter__(self) -> "JobRun":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            self.terminator.terminate(self.watcher.subscriptions)
        except TransportError as e:
            if exc is not None:
                # Keep the original error, cleanup failures are secondary
                logger.error(f"Cleanup failed after {exc_type.__name__}: {e}")
            elif self.outcome is not None and not self.succeeded:
                # The unsuccessful outcome is reported, not the cleanup error
                logger.error(
                    f"Cleanup failed after job {self.descriptor.name} ended "
                    f"{self.outcome.status.value}: {e}"
                )
            else:
                raise
        return False

    def execute(self, timeout: Optional[float] = None) -> RunOutcome:
        """
        Open the watches, submit the job and wait for it to finish.

        The watches are opened first so no early event is missed.

        Raises:
            TransportError: If the job cannot be submitted
        """
        self.watcher.start()
        self.client.create_job(self.descriptor.namespace, self.manifest)
        self.terminator.mark_submitted()
        log_span_event(
            f"Submitted job {self.descriptor.name}",
            {"namespace": self.descriptor.namespace, "selector": self.label_selector},
        )
        self.outcome = self.watcher.wait(timeout)
        return self.outcome

    @property
    def succeeded(self) -> bool:
        return self.outcome is not None and self.outcome.status == RunStatus.SUCCEEDED

    def interrupt(self) -> None:
        self.watcher.interrupt()
