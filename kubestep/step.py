"""
Kubernetes job step.

Entry point for the host job-execution framework: takes the flat step
configuration and the execution context, runs the job to completion and
either returns the successful outcome or raises a StepFailure.
"""

import threading
from typing import Any, Callable, Dict, Mapping, Optional

from kubernetes.config import ConfigException

from kubestep.core.config import Settings, settings as default_settings
from kubestep.core.constants import RunStatus
from kubestep.core.exceptions import (
    ConfigurationError,
    ExecutionTimeoutFailure,
    InterruptionFailure,
    StepFailure,
    TransportError,
    UnexpectedFailure,
)
from kubestep.core.telemetry import get_logger, trace_span
from kubestep.execution.clients.base import ControlPlaneClient
from kubestep.execution.clients.k8s import K8sClient, build_client_configuration
from kubestep.execution.job_run import JobRun
from kubestep.execution.job_spec import ExecutionContext, StepConfiguration
from kubestep.execution.outcome import RunOutcome
from kubestep.execution.spec_builder import build_job_manifest
from kubestep.execution.translator import build_descriptor, parse_step_configuration

logger = get_logger(__name__)

ClientFactory = Callable[[StepConfiguration], ControlPlaneClient]


def create_client(
    step: StepConfiguration, settings: Settings = default_settings
) -> ControlPlaneClient:
    """Create a Kubernetes client, step overrides taking precedence over settings."""
    configuration = build_client_configuration(
        master=step.kube_master or settings.kube_master,
        token=step.kube_token or settings.kube_token,
        ssl_validate=(
            settings.kube_ssl_validate if step.kube_ssl is None else step.kube_ssl
        ),
    )
    return K8sClient(
        configuration,
        reconnect_interval=settings.watch_reconnect_interval,
        reconnect_limit=settings.watch_reconnect_limit,
        watch_timeout_seconds=settings.watch_timeout_seconds,
    )


class KubernetesStep:
    """Runs a Kubernetes Job as a workflow step."""

    def __init__(
        self,
        settings: Settings = default_settings,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.settings = settings
        self.client_factory = client_factory or (
            lambda step: create_client(step, settings)
        )
        self._lock = threading.Lock()
        # Keyed by job name, which is unique per run id
        self._active_runs: Dict[str, JobRun] = {}

    def wait_timeout(self, active_deadline_seconds: Optional[int]) -> Optional[float]:
        """Local bound on the wait; the control plane enforces the deadline itself."""
        if active_deadline_seconds is None:
            return None
        return float(active_deadline_seconds + self.settings.deadline_grace_seconds)

    def interrupt(self) -> bool:
        """
        Interrupt every run of this step currently in progress, from any thread.

        Returns:
            True if a run was active
        """
        with self._lock:
            runs = list(self._active_runs.values())
        for run in runs:
            run.interrupt()
        return bool(runs)

    @trace_span
    def execute_step(
        self, context: ExecutionContext, configuration: Mapping[str, Any]
    ) -> RunOutcome:
        """
        Run the configured job to completion.

        Args:
            context: Job name, run id, option values and output logger
            configuration: Flat step configuration

        Returns:
            The Succeeded outcome

        Raises:
            UnexpectedFailure: Invalid configuration, control-plane error or
                failed job
            ExecutionTimeoutFailure: The job ran past its deadline
            InterruptionFailure: The wait was interrupted
        """
        try:
            step = parse_step_configuration(configuration)
            descriptor = build_descriptor(step, context)
            manifest = build_job_manifest(descriptor)
        except ConfigurationError as e:
            logger.error(f"Invalid step configuration: {e}")
            raise UnexpectedFailure(str(e)) from e

        try:
            client = self.client_factory(step)
        except (ConfigException, OSError) as e:
            logger.error(f"Could not create Kubernetes client: {e}")
            raise UnexpectedFailure(f"Could not create Kubernetes client: {e}") from e

        timeout = self.wait_timeout(descriptor.active_deadline_seconds)
        run = JobRun(descriptor, manifest, client, context.output_logger)
        with self._lock:
            self._active_runs[descriptor.name] = run

        try:
            with run:
                outcome = run.execute(timeout)
        except TransportError as e:
            logger.error(f"Job {descriptor.name} failed on the control plane: {e}")
            outcome = RunOutcome(status=RunStatus.TRANSPORT_ERROR, reason_text=str(e))
            raise UnexpectedFailure(str(e), outcome) from e
        except KeyboardInterrupt as e:
            logger.error(f"Job {descriptor.name} interrupted")
            outcome = RunOutcome(
                status=RunStatus.INTERRUPTED, reason_text="Interrupted"
            )
            raise InterruptionFailure(outcome.reason_text, outcome) from e
        finally:
            with self._lock:
                if self._active_runs.get(descriptor.name) is run:
                    del self._active_runs[descriptor.name]

        return self._report(descriptor.name, outcome)

    def _report(self, job_name: str, outcome: RunOutcome) -> RunOutcome:
        if outcome.status == RunStatus.SUCCEEDED:
            logger.info(f"Job {job_name} completed: {outcome.reason_text}")
            return outcome

        failure: StepFailure
        if outcome.status == RunStatus.TIMED_OUT:
            failure = ExecutionTimeoutFailure(outcome.reason_text, outcome)
        elif outcome.status == RunStatus.INTERRUPTED:
            failure = InterruptionFailure(outcome.reason_text, outcome)
        else:
            failure = UnexpectedFailure(outcome.reason_text, outcome)

        logger.error(f"Job {job_name} {outcome.status.value}: {outcome.reason_text}")
        raise failure
