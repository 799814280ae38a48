from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol, Sequence

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single step of a host-side run."""

    step_id: str

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class PipelineResult:
    state: Dict[str, Any]
    ran_steps: List[str]


def run_pipeline(*, state: Dict[str, Any], steps: Sequence[Step]) -> PipelineResult:
    """Run steps in order; the first exception ends the run.

    `execution.current_step` names the failing step when an exception
    escapes, and `execution.completed_steps` lists what finished.
    """

    ran: List[str] = []
    exe = state.setdefault("execution", {})
    exe.setdefault("completed_steps", [])

    for step in steps:
        exe["current_step"] = step.step_id
        logger.info("Running step %s", step.step_id)
        state = step.run(state)
        exe = state.setdefault("execution", {})
        exe.setdefault("completed_steps", []).append(step.step_id)
        ran.append(step.step_id)

    exe["current_step"] = None
    return PipelineResult(state=state, ran_steps=ran)
