"""
Terminal result of one orchestration run.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from kubestep.core.constants import RunStatus


class RunOutcome(BaseModel):
    """Outcome produced exactly once per run."""

    model_config = ConfigDict(frozen=True)

    status: RunStatus
    reason_text: str = Field(default="", description="Human readable reason")
    completion_condition_reason: Optional[str] = Field(
        default=None,
        description="Reason of the workload's terminal condition, if one arrived",
    )
