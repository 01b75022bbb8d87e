"""
Kubernetes Job manifest construction.

The manifest is rendered in one pass from a Jinja2 template and parsed into
the plain dict accepted by BatchV1Api.create_namespaced_job.
"""

import os
from typing import Any, Dict

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined
from kubernetes.utils import parse_quantity

from kubestep.core.constants import RESOURCE_REQUESTS
from kubestep.core.exceptions import ConfigurationError
from kubestep.core.telemetry import get_logger
from kubestep.execution.job_spec import JobDescriptor

logger = get_logger(__name__)

JOB_TEMPLATE = "job.yaml.j2"

# Navigate to job_templates from the package root
_package_root = os.path.dirname(os.path.dirname(__file__))
template_dir = os.path.join(_package_root, "job_templates")
jinja_env = Environment(
    loader=FileSystemLoader(template_dir),
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=StrictUndefined,
)


def _check_quantities(descriptor: JobDescriptor) -> None:
    for resource, quantity in descriptor.resource_requests.items():
        try:
            parse_quantity(quantity)
        except ValueError as e:
            raise ConfigurationError(
                RESOURCE_REQUESTS, f"Invalid quantity {quantity!r} for {resource}"
            ) from e


def build_job_manifest(descriptor: JobDescriptor) -> Dict[str, Any]:
    """
    Build the batch/v1 Job manifest for a descriptor.

    Optional parts (deadline, pull secret, node selector, command, args,
    mounts, resource requests) are only emitted when set. The container is
    named after the job.

    Raises:
        ConfigurationError: If a resource request quantity is malformed
    """
    _check_quantities(descriptor)

    template = jinja_env.get_template(JOB_TEMPLATE)
    manifest_yaml = template.render(job=descriptor)
    logger.debug(f"Rendered Job YAML:\n{manifest_yaml}")

    return yaml.safe_load(manifest_yaml)
