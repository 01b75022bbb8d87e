"""
Base control-plane client interface.

Defines the operations the orchestrator needs on workloads (Jobs) and tasks
(Pods), independent of the client library used to reach the cluster.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

from kubestep.core.constants import StreamKind

# Called with the event action ("ADDED", "MODIFIED", "DELETED") and the resource
EventHandler = Callable[[str, Any], None]


class Subscription(ABC):
    """Handle on an open event stream."""

    @abstractmethod
    def close(self) -> None:
        """
        Stop delivering events. Safe to call more than once.
        """
        pass


class ControlPlaneClient(ABC):
    """Abstract base class for control-plane clients."""

    @abstractmethod
    def create_job(self, namespace: str, manifest: Dict[str, Any]) -> None:
        """
        Submit a Job manifest.

        Raises:
            TransportError: If the control plane rejects or cannot take the job
        """
        pass

    @abstractmethod
    def delete_job(self, namespace: str, name: str) -> bool:
        """
        Delete a Job.

        Returns:
            False if the job was already gone, True otherwise
        """
        pass

    @abstractmethod
    def list_tasks(self, namespace: str, label_selector: str) -> List[str]:
        """
        List the names of the tasks matching a label selector.
        """
        pass

    @abstractmethod
    def delete_task(self, namespace: str, name: str) -> bool:
        """
        Delete a task.

        Returns:
            False if the task was already gone, True otherwise
        """
        pass

    @abstractmethod
    def read_task_log(self, namespace: str, name: str) -> str:
        """
        Fetch the output of a task.
        """
        pass

    @abstractmethod
    def watch(
        self,
        kind: StreamKind,
        namespace: str,
        label_selector: str,
        handler: EventHandler,
    ) -> Subscription:
        """
        Subscribe to state changes of one resource kind.

        Events are delivered to ``handler`` on a background thread, in the
        order the control plane emits them, until the subscription is closed.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """
        Release the connection. Safe to call more than once.
        """
        pass
