from enum import Enum


class RestartPolicy(str, Enum):
    """Pod restart policies allowed for Jobs."""

    NEVER = "Never"
    ON_FAILURE = "OnFailure"


class ImagePullPolicy(str, Enum):
    """Container image pull policies."""

    ALWAYS = "Always"
    IF_NOT_PRESENT = "IfNotPresent"
    NEVER = "Never"


class StreamKind(str, Enum):
    """Event streams observed during a run."""

    WORKLOAD = "Workload"
    TASK = "Task"


class RunStatus(str, Enum):
    """Terminal status of one run."""

    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"
    INTERRUPTED = "Interrupted"
    TRANSPORT_ERROR = "TransportError"


class FailureReason(str, Enum):
    """Failure categories reported to the host framework."""

    UNEXPECTED_FAILURE = "UnexpectedFailure"
    EXECUTION_TIMEOUT_FAILURE = "ExecutionTimeoutFailure"
    INTERRUPTION_FAILURE = "InterruptionFailure"


# Step configuration keys
KUBE_MASTER = "kubeMaster"
KUBE_TOKEN = "kubeToken"
KUBE_SSL = "kubeSSL"
IMAGE = "image"
IMAGE_PULL_SECRETS = "imagePullSecrets"
IMAGE_PULL_POLICY = "imagePullPolicy"
COMMAND = "command"
ARGUMENTS = "arguments"
NODE_SELECTOR = "nodeSelector"
NAMESPACE = "namespace"
ACTIVE_DEADLINE = "activeDeadlineSeconds"
RESTART_POLICY = "restartPolicy"
COMPLETIONS = "completions"
PARALLELISM = "parallelism"
PERSISTENT_VOLUME = "persistentVolume"
SECRET = "secret"
RESOURCE_REQUESTS = "resourceRequests"
CLEAN_UP = "cleanUp"
LABELS = "labels"

# Labels
JOB_NAME_LABEL = "job-name"
LABEL_SEPARATOR = " "
LABEL_KV_SEPARATOR = "="

# Workload condition types and phases
CONDITION_COMPLETE = "Complete"
CONDITION_FAILED = "Failed"
DEADLINE_EXCEEDED_REASON = "DeadlineExceeded"
TASK_PHASE_SUCCEEDED = "Succeeded"
TASK_PHASE_FAILED = "Failed"
