"""
Translation of a flat step configuration into a JobDescriptor.

Malformed optional entries (volumes, secrets, resource requests) are logged
and skipped. Missing or malformed required fields and invalid labels abort
the translation with a ConfigurationError.
"""

import re
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from kubestep.core.constants import (
    JOB_NAME_LABEL,
    LABEL_KV_SEPARATOR,
    LABEL_SEPARATOR,
    NODE_SELECTOR,
    PERSISTENT_VOLUME,
    RESOURCE_REQUESTS,
    SECRET,
)
from kubestep.core.exceptions import ConfigurationError
from kubestep.core.telemetry import get_logger
from kubestep.execution.job_spec import (
    ExecutionContext,
    JobDescriptor,
    StepConfiguration,
)
from kubestep.execution.labels import validate_and_get_labels

logger = get_logger(__name__)

# A double or single quoted span (escaped quotes allowed inside) or a run of
# non-whitespace. An unmatched quote falls through to the last alternative.
_TOKEN_PATTERN = re.compile(
    r"(\"(?:.(?!(?<!\\)\"))*.?\"|'(?:.(?!(?<!\\)'))*.?'|\S+)"
)
_MOUNT_SEPARATOR = re.compile(r"\s*;\s*")
_RESOURCE_NAME_PATTERN = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?")
MAX_RESOURCE_NAME_LENGTH = 63


def substitute_options(text: str, options: Mapping[str, str]) -> str:
    """Replace every ``${name}`` with its option value; unknown names stay as-is."""
    for name, value in options.items():
        text = text.replace("${" + name + "}", value)
    return text


def tokenize(text: str, options: Mapping[str, str]) -> List[str]:
    """
    Split a command line into tokens after option substitution.

    Quoted spans are kept as one token, quotes included.

    Example:
        tokenize('echo "hello world" ${x}', {"x": "42"})
        -> ['echo', '"hello world"', '42']
    """
    return [
        match.group(1)
        for match in _TOKEN_PATTERN.finditer(substitute_options(text, options))
    ]


def parse_mounts(
    field: str, raw: Optional[str], options: Mapping[str, str]
) -> Dict[str, str]:
    """
    Parse comma separated ``<name>;<mountPath>`` entries.

    Malformed entries are skipped with a warning.
    """
    mounts: Dict[str, str] = {}
    if not raw:
        return mounts

    for entry in raw.split(","):
        parts = _MOUNT_SEPARATOR.split(entry.strip())
        if len(parts) != 2 or not parts[0] or not parts[1]:
            logger.warning(f"Invalid format for {field}: {entry!r}, skipping")
            continue
        name = substitute_options(parts[0], options)
        mounts[name] = substitute_options(parts[1], options)
    return mounts


def parse_resource_requests(raw: Optional[str]) -> Dict[str, str]:
    """
    Parse ``cpu:4 memory:24Gi`` style resource requests.

    Quantities are checked later, when the manifest is built.
    """
    requests: Dict[str, str] = {}
    if not raw:
        return requests

    for entry in raw.split():
        name, separator, quantity = entry.partition(":")
        if not separator or not name or not quantity:
            logger.warning(
                f"Invalid format for {RESOURCE_REQUESTS}: {entry!r}, skipping"
            )
            continue
        requests[name] = quantity
    return requests


def parse_node_selector(raw: Optional[str]) -> Dict[str, str]:
    """Parse a ``key=value,key2=value2`` node selector."""
    selector: Dict[str, str] = {}
    if not raw:
        return selector

    for entry in raw.split(","):
        key, separator, value = entry.strip().partition("=")
        if not separator or not key:
            raise ConfigurationError(NODE_SELECTOR, f"Invalid entry {entry!r}")
        selector[key] = value
    return selector


def build_job_name(context: ExecutionContext) -> str:
    """Derive the Kubernetes Job name from the host job name and run id."""
    name = f"{context.job_name.lower()}-{context.run_id}"
    too_long = len(name) > MAX_RESOURCE_NAME_LENGTH
    if too_long or not _RESOURCE_NAME_PATTERN.fullmatch(name):
        raise ConfigurationError(
            "name", f'"{name}" is not a valid Kubernetes resource name'
        )
    return name


def build_labels(job_name: str, raw: Optional[str]) -> Dict[str, str]:
    """Validate the configured labels, with the correlation label prepended."""
    labels = f"{JOB_NAME_LABEL}{LABEL_KV_SEPARATOR}{job_name}"
    if raw and raw.strip():
        labels += LABEL_SEPARATOR + raw.strip()
    return validate_and_get_labels(LABEL_KV_SEPARATOR, LABEL_SEPARATOR, labels)


def parse_step_configuration(configuration: Mapping[str, Any]) -> StepConfiguration:
    """
    Validate the raw configuration map.

    Blank values count as absent so that empty form fields take their defaults.
    """
    present = {
        key: value
        for key, value in configuration.items()
        if value is not None and not (isinstance(value, str) and not value.strip())
    }
    try:
        return StepConfiguration.model_validate(present)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "configuration"
        raise ConfigurationError(field, error["msg"]) from e


def build_descriptor(
    step: StepConfiguration, context: ExecutionContext
) -> JobDescriptor:
    """Build a JobDescriptor from an already validated step configuration."""
    options = context.options
    name = build_job_name(context)

    return JobDescriptor(
        name=name,
        namespace=step.namespace,
        labels=build_labels(name, step.labels),
        image=step.image,
        image_pull_policy=step.image_pull_policy,
        image_pull_secret_name=step.image_pull_secrets,
        command=tokenize(step.command, options) if step.command else None,
        arguments=tokenize(step.arguments, options) if step.arguments else None,
        resource_requests=parse_resource_requests(step.resource_requests),
        restart_policy=step.restart_policy,
        completions=step.completions,
        parallelism=step.parallelism,
        active_deadline_seconds=step.active_deadline_seconds,
        node_selector=parse_node_selector(step.node_selector),
        persistent_volume_mounts=parse_mounts(
            PERSISTENT_VOLUME, step.persistent_volume, options
        ),
        secret_mounts=parse_mounts(SECRET, step.secret, options),
        cleanup_on_exit=step.clean_up,
    )


def translate_configuration(
    configuration: Mapping[str, Any], context: ExecutionContext
) -> JobDescriptor:
    """
    Build a JobDescriptor from the step configuration and execution context.

    Args:
        configuration: Flat step configuration keyed by camelCase names
        context: Job name, run id and option values of this execution

    Returns:
        The validated JobDescriptor

    Raises:
        ConfigurationError: If a required field is missing or malformed,
            or if any label is invalid
    """
    return build_descriptor(parse_step_configuration(configuration), context)
