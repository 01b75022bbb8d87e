"""
Job specification models.

StepConfiguration is the raw, flat step configuration as handed over by the
host framework. JobDescriptor is the validated, cluster-agnostic description
of the workload built from it.
"""

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from kubestep.core.constants import (
    ACTIVE_DEADLINE,
    ARGUMENTS,
    CLEAN_UP,
    COMMAND,
    COMPLETIONS,
    IMAGE,
    IMAGE_PULL_POLICY,
    IMAGE_PULL_SECRETS,
    KUBE_MASTER,
    KUBE_SSL,
    KUBE_TOKEN,
    LABELS,
    NAMESPACE,
    NODE_SELECTOR,
    PARALLELISM,
    PERSISTENT_VOLUME,
    RESOURCE_REQUESTS,
    RESTART_POLICY,
    SECRET,
    ImagePullPolicy,
    RestartPolicy,
)


class StepConfiguration(BaseModel):
    """
    Flat key/value configuration of one step.

    Keys use the host framework's camelCase names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Connection overrides
    kube_master: Optional[str] = Field(default=None, alias=KUBE_MASTER)
    kube_token: Optional[str] = Field(default=None, alias=KUBE_TOKEN)
    kube_ssl: Optional[bool] = Field(default=None, alias=KUBE_SSL)

    # Workload
    image: str = Field(..., alias=IMAGE)
    image_pull_secrets: Optional[str] = Field(default=None, alias=IMAGE_PULL_SECRETS)
    image_pull_policy: Optional[ImagePullPolicy] = Field(
        default=None, alias=IMAGE_PULL_POLICY
    )
    command: Optional[str] = Field(default=None, alias=COMMAND)
    arguments: Optional[str] = Field(default=None, alias=ARGUMENTS)
    node_selector: Optional[str] = Field(default=None, alias=NODE_SELECTOR)
    namespace: str = Field(default="default", alias=NAMESPACE)
    active_deadline_seconds: Optional[int] = Field(
        default=None, gt=0, alias=ACTIVE_DEADLINE
    )
    restart_policy: RestartPolicy = Field(
        default=RestartPolicy.NEVER, alias=RESTART_POLICY
    )
    completions: int = Field(default=1, ge=1, alias=COMPLETIONS)
    parallelism: int = Field(default=1, ge=1, alias=PARALLELISM)
    persistent_volume: Optional[str] = Field(default=None, alias=PERSISTENT_VOLUME)
    secret: Optional[str] = Field(default=None, alias=SECRET)
    resource_requests: Optional[str] = Field(default=None, alias=RESOURCE_REQUESTS)
    labels: Optional[str] = Field(default=None, alias=LABELS)
    clean_up: bool = Field(default=True, alias=CLEAN_UP)


class ExecutionContext(BaseModel):
    """What the host framework knows about the current execution."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    job_name: str = Field(..., description="Name of the host framework job")
    run_id: int = Field(..., description="Numeric id of this execution")
    options: Dict[str, str] = Field(
        default_factory=dict, description="User supplied option values"
    )
    output_logger: Optional[logging.Logger] = Field(
        default=None, description="Sink for task output, defaults to a module logger"
    )


class JobDescriptor(BaseModel):
    """
    Validated description of one Kubernetes Job.

    Built once per run and never mutated afterwards. ``labels`` always holds
    the ``job-name`` correlation label used to filter both watch streams.
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    name: str = Field(..., description="Job name, also the container name")
    namespace: str = Field(default="default")
    labels: Dict[str, str] = Field(default_factory=dict)

    # Container
    image: str
    image_pull_policy: Optional[ImagePullPolicy] = None
    image_pull_secret_name: Optional[str] = None
    command: Optional[List[str]] = None
    arguments: Optional[List[str]] = None
    resource_requests: Dict[str, str] = Field(
        default_factory=dict, description="Resource name to quantity, e.g. cpu: 4"
    )

    # Job behavior
    restart_policy: RestartPolicy = RestartPolicy.NEVER
    completions: int = Field(default=1, ge=1)
    parallelism: int = Field(default=1, ge=1)
    active_deadline_seconds: Optional[int] = Field(default=None, gt=0)
    node_selector: Dict[str, str] = Field(default_factory=dict)

    # Mounts
    persistent_volume_mounts: Dict[str, str] = Field(
        default_factory=dict, description="Claim name to mount path"
    )
    secret_mounts: Dict[str, str] = Field(
        default_factory=dict, description="Secret name to mount path"
    )

    cleanup_on_exit: bool = True
