"""Marker protocol and typed updates for streamed module generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

PLAN_START = "[PLAN_START]"
PLAN_END = "[PLAN_END]"
CODE_START = "[CODE_START:"
CODE_END = "[CODE_END]"
SUCCESS_START = "[SUCCESS:"
TAG_CLOSE = "]"


@dataclass(frozen=True)
class PlanUpdate:
    plan: tuple[str, ...]


@dataclass(frozen=True)
class ArtifactUpdate:
    """Full snapshot of every artifact resolved so far, not a diff."""

    artifacts: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CompletedUpdate:
    message: str


@dataclass(frozen=True)
class FailedUpdate:
    error: str


Update = Union[PlanUpdate, ArtifactUpdate, CompletedUpdate, FailedUpdate]


def format_plan(steps: list[str]) -> str:
    lines = "\n".join(steps)
    return f"{PLAN_START}\n{lines}\n{PLAN_END}"


def format_code_block(path: str, content: str) -> str:
    return f"{CODE_START}{path}{TAG_CLOSE}\n{content}\n{CODE_END}"


def format_success(message: str) -> str:
    return f"{SUCCESS_START}{message}{TAG_CLOSE}"
