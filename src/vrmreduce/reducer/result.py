"""Per-step results threaded through the reduction pipeline."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class StepResult:
    """Outcome of one pipeline step.

    Attributes:
        name: Step name
        remap: Old index -> new index for the element kind the step
            renumbered, or None if nothing was renumbered
        skipped: True if the step was skipped for a recoverable reason
        details: Step-specific statistics
    """

    name: str
    remap: dict[int, int] | None = None
    skipped: bool = False
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReductionReport:
    """Summary of a whole ``reduce`` run."""

    tris_before: int = 0
    tris_after: int = 0
    bytes_before: int = 0
    bytes_after: int = 0
    steps: list[StepResult] = field(default_factory=list)

    def step(self, name: str) -> StepResult | None:
        for result in self.steps:
            if result.name == name:
                return result
        return None

    def to_json(self) -> dict[str, Any]:
        return {
            "trisBefore": self.tris_before,
            "trisAfter": self.tris_after,
            "bytesBefore": self.bytes_before,
            "bytesAfter": self.bytes_after,
            "steps": [
                {
                    "name": s.name,
                    "skipped": s.skipped,
                    "remap": None if s.remap is None else {str(k): v for k, v in s.remap.items()},
                    "details": s.details,
                }
                for s in self.steps
            ],
        }
