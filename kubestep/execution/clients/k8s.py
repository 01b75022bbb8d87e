"""
Kubernetes control-plane client.

Wraps the Kubernetes Python client:
- BatchV1Api for Jobs (workloads)
- CoreV1Api for Pods (tasks) and their logs
- kubernetes.watch streams, each drained on its own daemon thread
"""

import threading
from typing import Any, Callable, Dict, List, Optional

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from kubestep.core.config import settings
from kubestep.core.constants import StreamKind
from kubestep.core.exceptions import TransportError
from kubestep.core.telemetry import get_logger
from kubestep.execution.clients.base import (
    ControlPlaneClient,
    EventHandler,
    Subscription,
)

logger = get_logger(__name__)

# Deleting a Job leaves its pods to the garbage collector
DELETE_PROPAGATION_POLICY = "Background"

# Seconds close() waits for a watch thread blocked on a quiet stream
CLOSE_JOIN_TIMEOUT = 2.0


def build_client_configuration(
    master: Optional[str] = None,
    token: Optional[str] = None,
    ssl_validate: bool = True,
) -> client.Configuration:
    """
    Build the connection configuration.

    Without an explicit master URL the in-cluster configuration is used,
    falling back to the local kubeconfig.

    Args:
        master: URL of the Kubernetes API server
        token: Bearer token
        ssl_validate: Validate the API server certificate
    """
    configuration = client.Configuration()
    if master:
        configuration.host = master
    else:
        try:
            config.load_incluster_config(client_configuration=configuration)
        except config.ConfigException:
            config.load_kube_config(client_configuration=configuration)

    if token:
        configuration.api_key = {"authorization": token}
        configuration.api_key_prefix = {"authorization": "Bearer"}
    configuration.verify_ssl = ssl_validate
    return configuration


class WatchSubscription(Subscription):
    """
    A kubernetes.watch stream drained on a daemon thread.

    When the server closes the watch window the stream is resumed from the
    last seen resource version. Transport errors are logged; the stream is
    reopened up to ``reconnect_limit`` times (negative for no limit), waiting
    ``reconnect_interval`` seconds in between.
    """

    def __init__(
        self,
        list_func: Callable[..., Any],
        namespace: str,
        label_selector: str,
        handler: EventHandler,
        name: str,
        reconnect_interval: float,
        reconnect_limit: int,
        timeout_seconds: int,
    ):
        self.list_func = list_func
        self.namespace = namespace
        self.label_selector = label_selector
        self.handler = handler
        self.name = name
        self.reconnect_interval = reconnect_interval
        self.reconnect_limit = reconnect_limit
        self.timeout_seconds = timeout_seconds

        self._stopped = threading.Event()
        self._watch = watch.Watch()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def close(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        # Takes effect on the next event or at the end of the watch window
        self._watch.stop()

        # A handler may close its own subscription from the watch thread
        thread = self._thread
        if thread.is_alive() and thread is not threading.current_thread():
            thread.join(CLOSE_JOIN_TIMEOUT)
            if thread.is_alive():
                logger.debug(
                    f"Watch {self.name} still draining, it ends with the current "
                    f"window of at most {self.timeout_seconds}s"
                )
                return
        logger.debug(f"Closed watch {self.name}")

    @property
    def closed(self) -> bool:
        return self._stopped.is_set()

    def _can_reconnect(self, reconnects: int) -> bool:
        return self.reconnect_limit < 0 or reconnects < self.reconnect_limit

    def _run(self) -> None:
        resource_version: Optional[str] = None
        reconnects = 0

        while not self._stopped.is_set():
            kwargs: Dict[str, Any] = {
                "label_selector": self.label_selector,
                "timeout_seconds": self.timeout_seconds,
            }
            if resource_version:
                kwargs["resource_version"] = resource_version

            try:
                stream = self._watch.stream(self.list_func, self.namespace, **kwargs)
                for event in stream:
                    if self._stopped.is_set():
                        return
                    resource = event["object"]
                    resource_version = resource.metadata.resource_version
                    reconnects = 0
                    self._dispatch(event["type"], resource)
            except ApiException as e:
                if self._stopped.is_set():
                    return
                if e.status == 410:
                    # Resource version too old, start over from a fresh list
                    logger.info(f"Watch {self.name} expired, restarting")
                    resource_version = None
                    continue
                logger.error(f"Watch {self.name} failed: {e}")
            except (HTTPError, OSError) as e:
                if self._stopped.is_set():
                    return
                logger.error(f"Watch {self.name} connection error: {e}")
            else:
                # Server closed the window, resume where we left off
                continue

            if not self._can_reconnect(reconnects):
                logger.error(f"Watch {self.name} closed, not reconnecting")
                return
            reconnects += 1
            logger.info(
                f"Reconnecting watch {self.name} in {self.reconnect_interval}s "
                f"(attempt {reconnects})"
            )
            self._stopped.wait(self.reconnect_interval)

    def _dispatch(self, action: str, resource: Any) -> None:
        try:
            self.handler(action, resource)
        except Exception:
            logger.exception(f"Watch {self.name} handler failed on {action} event")


class K8sClient(ControlPlaneClient):
    """Control-plane client for a Kubernetes cluster."""

    def __init__(
        self,
        configuration: Optional[client.Configuration] = None,
        reconnect_interval: Optional[float] = None,
        reconnect_limit: Optional[int] = None,
        watch_timeout_seconds: Optional[int] = None,
    ):
        """Initialize K8s API clients."""
        if configuration is None:
            configuration = build_client_configuration(
                settings.kube_master, settings.kube_token, settings.kube_ssl_validate
            )

        self.api_client = client.ApiClient(configuration)
        self.batch_v1 = client.BatchV1Api(self.api_client)
        self.core_v1 = client.CoreV1Api(self.api_client)

        if reconnect_interval is None:
            reconnect_interval = settings.watch_reconnect_interval
        if reconnect_limit is None:
            reconnect_limit = settings.watch_reconnect_limit
        if watch_timeout_seconds is None:
            watch_timeout_seconds = settings.watch_timeout_seconds

        self.reconnect_interval = reconnect_interval
        self.reconnect_limit = reconnect_limit
        self.watch_timeout_seconds = watch_timeout_seconds
        self._closed = False

    def create_job(self, namespace: str, manifest: Dict[str, Any]) -> None:
        job_name = manifest.get("metadata", {}).get("name")
        try:
            # The K8s Python client accepts plain dicts as body
            self.batch_v1.create_namespaced_job(namespace=namespace, body=manifest)
        except ApiException as e:
            raise TransportError(
                f"Failed to create K8s job {job_name}: {e.reason}", status=e.status
            ) from e
        except HTTPError as e:
            raise TransportError(f"Failed to create K8s job {job_name}: {e}") from e
        logger.info(f"Created Kubernetes job {job_name} in namespace {namespace}")

    def delete_job(self, namespace: str, name: str) -> bool:
        try:
            self.batch_v1.delete_namespaced_job(
                name=name,
                namespace=namespace,
                propagation_policy=DELETE_PROPAGATION_POLICY,
            )
        except ApiException as e:
            if e.status == 404:
                logger.info(f"Job {name} already deleted or not found")
                return False
            raise TransportError(
                f"Failed to delete job {name}: {e.reason}", status=e.status
            ) from e
        except HTTPError as e:
            raise TransportError(f"Failed to delete job {name}: {e}") from e
        logger.info(f"Deleted Kubernetes job {name} in namespace {namespace}")
        return True

    def list_tasks(self, namespace: str, label_selector: str) -> List[str]:
        try:
            pods = self.core_v1.list_namespaced_pod(
                namespace=namespace, label_selector=label_selector
            )
        except ApiException as e:
            raise TransportError(
                f"Failed to list pods for {label_selector}: {e.reason}",
                status=e.status,
            ) from e
        except HTTPError as e:
            raise TransportError(
                f"Failed to list pods for {label_selector}: {e}"
            ) from e
        return [pod.metadata.name for pod in pods.items]

    def delete_task(self, namespace: str, name: str) -> bool:
        try:
            self.core_v1.delete_namespaced_pod(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                logger.info(f"Pod {name} already deleted or not found")
                return False
            raise TransportError(
                f"Failed to delete pod {name}: {e.reason}", status=e.status
            ) from e
        except HTTPError as e:
            raise TransportError(f"Failed to delete pod {name}: {e}") from e
        logger.info(f"Deleted pod {name} in namespace {namespace}")
        return True

    def read_task_log(self, namespace: str, name: str) -> str:
        try:
            return self.core_v1.read_namespaced_pod_log(name=name, namespace=namespace)
        except ApiException as e:
            raise TransportError(
                f"Failed to read log of pod {name}: {e.reason}", status=e.status
            ) from e
        except HTTPError as e:
            raise TransportError(f"Failed to read log of pod {name}: {e}") from e

    def watch(
        self,
        kind: StreamKind,
        namespace: str,
        label_selector: str,
        handler: EventHandler,
    ) -> WatchSubscription:
        if kind == StreamKind.WORKLOAD:
            list_func = self.batch_v1.list_namespaced_job
        else:
            list_func = self.core_v1.list_namespaced_pod

        subscription = WatchSubscription(
            list_func=list_func,
            namespace=namespace,
            label_selector=label_selector,
            handler=handler,
            name=f"{kind.value.lower()}-watch[{label_selector}]",
            reconnect_interval=self.reconnect_interval,
            reconnect_limit=self.reconnect_limit,
            timeout_seconds=self.watch_timeout_seconds,
        )
        subscription.start()
        return subscription

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.api_client.close()
        logger.debug("Closed Kubernetes API client")
