"""
Lifecycle status derivation.

Status is never read back from what was written. It is recomputed from the
Deployment's observed state on every read, with this precedence (first match
wins):

1. deletion timestamp set             -> deleting
2. desired replicas == 0              -> stopped
3. Progressing=False, deadline passed -> failed
4. ready, available, generation seen  -> healthy
5. no pods materialized yet           -> pending
6. otherwise                          -> deploying
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

PROGRESS_DEADLINE_EXCEEDED = "ProgressDeadlineExceeded"


@dataclass(frozen=True)
class DeploymentCondition:
    type: str
    status: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class ObservedState:
    """The slice of a Deployment that status derivation looks at."""
    deleting: bool = False
    desired_replicas: int = 1
    conditions: List[DeploymentCondition] = field(default_factory=list)
    ready_replicas: int = 0
    available_replicas: int = 0
    replicas: int = 0
    generation: int = 0
    observed_generation: int = 0

    @classmethod
    def from_deployment(cls, deployment: Any) -> "ObservedState":
        """Build from a kubernetes V1Deployment (missing fields read as zero/empty)."""
        metadata = deployment.metadata
        spec = deployment.spec
        status = deployment.status

        desired = spec.replicas if spec is not None and spec.replicas is not None else 1

        conditions = []
        if status is not None and status.conditions:
            conditions = [
                DeploymentCondition(type=c.type, status=c.status, reason=c.reason)
                for c in status.conditions
            ]

        return cls(
            deleting=metadata.deletion_timestamp is not None,
            desired_replicas=desired,
            conditions=conditions,
            ready_replicas=(status.ready_replicas or 0) if status is not None else 0,
            available_replicas=(status.available_replicas or 0) if status is not None else 0,
            replicas=(status.replicas or 0) if status is not None else 0,
            generation=metadata.generation or 0,
            observed_generation=(status.observed_generation or 0) if status is not None else 0,
        )


def _progress_deadline_exceeded(conditions: List[DeploymentCondition]) -> bool:
    for condition in conditions:
        if (condition.type == "Progressing"
                and condition.status == "False"
                and condition.reason == PROGRESS_DEADLINE_EXCEEDED):
            return True
    return False


def derive_status(state: ObservedState) -> str:
    if state.deleting:
        return "deleting"

    # Stale conditions on a scaled-down deployment must not read as failed
    if state.desired_replicas == 0:
        return "stopped"

    if _progress_deadline_exceeded(state.conditions):
        return "failed"

    if (state.ready_replicas > 0
            and state.available_replicas > 0
            and state.observed_generation >= state.generation):
        return "healthy"

    if state.replicas == 0:
        return "pending"

    return "deploying"
