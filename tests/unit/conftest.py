import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
from kubernetes.client import (
    V1Job,
    V1JobCondition,
    V1JobStatus,
    V1ObjectMeta,
    V1Pod,
    V1PodStatus,
)

from kubestep.core.constants import StreamKind
from kubestep.execution.clients.base import (
    ControlPlaneClient,
    EventHandler,
    Subscription,
)


class FakeSubscription(Subscription):
    def __init__(self, kind: StreamKind, label_selector: str, handler: EventHandler):
        self.kind = kind
        self.label_selector = label_selector
        self.handler = handler
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    def close(self) -> None:
        self.close_calls += 1

    def emit(self, action: str, resource: Any) -> None:
        """Deliver an event unless the subscription was closed."""
        if not self.closed:
            self.handler(action, resource)


class FakeControlPlaneClient(ControlPlaneClient):
    """In-memory control plane recording every call made to it."""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.tasks: Dict[str, List[str]] = {}
        self.logs: Dict[str, str] = {}
        self.subscriptions: Dict[StreamKind, FakeSubscription] = {}
        self.created: List[Dict[str, Any]] = []
        self.deleted_jobs: List[str] = []
        self.deleted_tasks: List[str] = []
        self.close_calls = 0
        self.on_create: Optional[Callable[["FakeControlPlaneClient"], None]] = None
        self._lock = threading.Lock()

    def create_job(self, namespace: str, manifest: Dict[str, Any]) -> None:
        name = manifest["metadata"]["name"]
        self.jobs[name] = manifest
        self.created.append(manifest)
        if self.on_create is not None:
            self.on_create(self)

    def delete_job(self, namespace: str, name: str) -> bool:
        self.deleted_jobs.append(name)
        return self.jobs.pop(name, None) is not None

    def list_tasks(self, namespace: str, label_selector: str) -> List[str]:
        return list(self.tasks.get(label_selector, []))

    def delete_task(self, namespace: str, name: str) -> bool:
        self.deleted_tasks.append(name)
        for names in self.tasks.values():
            if name in names:
                names.remove(name)
                return True
        return False

    def read_task_log(self, namespace: str, name: str) -> str:
        return self.logs.get(name, "")

    def watch(
        self,
        kind: StreamKind,
        namespace: str,
        label_selector: str,
        handler: EventHandler,
    ) -> FakeSubscription:
        subscription = FakeSubscription(kind, label_selector, handler)
        with self._lock:
            self.subscriptions[kind] = subscription
        return subscription

    def close(self) -> None:
        self.close_calls += 1

    def emit(self, kind: StreamKind, action: str, resource: Any) -> None:
        self.subscriptions[kind].emit(action, resource)


@pytest.fixture
def fake_client():
    return FakeControlPlaneClient()


@pytest.fixture
def make_fake_client():
    """Factory for additional fake control planes, one per run."""
    return FakeControlPlaneClient


@pytest.fixture
def make_job():
    """Build a V1Job snapshot with the given conditions."""

    def _make_job(name="report-42", conditions=None, resource_version="1"):
        return V1Job(
            metadata=V1ObjectMeta(name=name, resource_version=resource_version),
            status=V1JobStatus(conditions=conditions),
        )

    return _make_job


@pytest.fixture
def make_condition():
    def _make_condition(type_="Complete", status="True", reason=None, message=None):
        return V1JobCondition(
            type=type_, status=status, reason=reason, message=message
        )

    return _make_condition


@pytest.fixture
def make_pod():
    """Build a V1Pod snapshot in the given phase."""

    def _make_pod(name="report-42-abcde", phase="Running", deleting=False):
        return V1Pod(
            metadata=V1ObjectMeta(
                name=name,
                resource_version="1",
                deletion_timestamp=(
                    datetime(2026, 1, 1, tzinfo=timezone.utc) if deleting else None
                ),
            ),
            status=V1PodStatus(phase=phase),
        )

    return _make_pod


@pytest.fixture
def step_configuration():
    """A minimal valid step configuration, as the host framework passes it."""
    return {
        "image": "busybox:1.36",
        "namespace": "batch",
        "restartPolicy": "Never",
        "completions": "1",
        "parallelism": "1",
        "cleanUp": "true",
    }
