"""
Control-plane clients used to submit, watch and clean up jobs.
"""

from kubestep.execution.clients.base import (
    ControlPlaneClient,
    EventHandler,
    Subscription,
)
from kubestep.execution.clients.k8s import K8sClient, build_client_configuration

__all__ = [
    "ControlPlaneClient",
    "EventHandler",
    "Subscription",
    "K8sClient",
    "build_client_configuration",
]
