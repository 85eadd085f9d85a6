"""Accumulated generation result."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from modforge.protocol import (
    ArtifactUpdate,
    CompletedUpdate,
    FailedUpdate,
    PlanUpdate,
    Update,
)

# Main module file plus config.xml.
EXPECTED_ARTIFACTS = 2
DEFAULT_PLAN_LENGTH = 5


class GenerationStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ResultState(BaseModel):
    """Running result of one generation, merged from decoder updates in arrival order."""

    plan: list[str] = Field(default_factory=list)
    artifacts: dict[str, str] = Field(default_factory=dict)
    status: GenerationStatus = GenerationStatus.IN_PROGRESS
    completion_message: str | None = None
    error: str | None = None

    def apply(self, update: Update) -> "ResultState":
        if isinstance(update, PlanUpdate):
            self.plan = list(update.plan)
        elif isinstance(update, ArtifactUpdate):
            self.artifacts = dict(update.artifacts)
        elif isinstance(update, CompletedUpdate):
            self.status = GenerationStatus.COMPLETED
            self.completion_message = update.message
            self.error = None
        elif isinstance(update, FailedUpdate):
            self.status = GenerationStatus.FAILED
            self.error = update.error
            self.completion_message = None
        else:
            raise TypeError(f"Unsupported update type: {type(update).__name__}")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status is not GenerationStatus.IN_PROGRESS

    def progress_percent(self) -> int:
        if self.status is GenerationStatus.COMPLETED:
            return 100
        total = (len(self.plan) or DEFAULT_PLAN_LENGTH) + EXPECTED_ARTIFACTS
        done = len(self.plan) + len(self.artifacts)
        return min(100, round(done * 100 / total))

    def module_name(self) -> str | None:
        """Top-level folder of the first artifact, which names the module."""
        for path in self.artifacts:
            head = path.split("/", 1)[0].strip()
            if head:
                return head
        return None
