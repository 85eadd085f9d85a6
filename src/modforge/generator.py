"""Drive one module generation from prompt to merged result."""

from __future__ import annotations

from typing import AsyncIterator, Callable

from modforge.decoder import decode_stream
from modforge.models.base import BaseStreamingModel
from modforge.prompts import GenerationMode, build_messages, build_modify_request, build_prompt
from modforge.protocol import ArtifactUpdate, CompletedUpdate, FailedUpdate, PlanUpdate, Update
from modforge.state import ResultState
from modforge.util.logging import get_logger

logger = get_logger("modforge.generator")

UpdateCallback = Callable[[Update, ResultState], None]


class GenerationRequestError(ValueError):
    """Raised when a generation request is unusable."""


def validate_description(description: str, what: str = "a description for your module") -> str:
    cleaned = description.strip()
    if not cleaned:
        raise GenerationRequestError(f"Please provide {what}.")
    return cleaned


def _log_update(update: Update) -> None:
    if isinstance(update, PlanUpdate):
        logger.info("Plan received with %d steps", len(update.plan))
    elif isinstance(update, ArtifactUpdate):
        logger.info("Artifacts resolved: %d", len(update.artifacts))
    elif isinstance(update, CompletedUpdate):
        logger.info("Generation completed: %s", update.message)
    elif isinstance(update, FailedUpdate):
        logger.error("Generation failed: %s", update.error)


async def generate_module_stream(
    model: BaseStreamingModel,
    description: str,
    mode: GenerationMode = "create",
    fail_on_truncation: bool = False,
) -> AsyncIterator[Update]:
    """Stream decoded updates for one generation call.

    Each call uses a fresh decoder; retrying after a failure means calling
    this again.
    """
    request = validate_description(description)
    prompt = build_prompt(request, mode)
    logger.info("Starting %s generation", mode)
    updates = decode_stream(
        model.stream(build_messages(prompt)), fail_on_truncation=fail_on_truncation
    )
    async for update in updates:
        _log_update(update)
        yield update


async def run_generation(
    model: BaseStreamingModel,
    description: str,
    mode: GenerationMode = "create",
    on_update: UpdateCallback | None = None,
    initial: ResultState | None = None,
    fail_on_truncation: bool = False,
) -> ResultState:
    """Merge every update of a generation into a result and return it."""
    state = initial if initial is not None else ResultState()
    async for update in generate_module_stream(
        model, description, mode, fail_on_truncation=fail_on_truncation
    ):
        state.apply(update)
        if on_update is not None:
            on_update(update, state)
    if not state.is_terminal:
        logger.warning("Generation ended without a completion or failure update")
    return state


async def modify_module(
    model: BaseStreamingModel,
    description: str,
    existing: ResultState,
    request: str,
    on_update: UpdateCallback | None = None,
    fail_on_truncation: bool = False,
) -> ResultState:
    """Regenerate a module from its description, current files and a change request."""
    change = validate_description(request, "modification instructions")
    full_request = build_modify_request(description, list(existing.artifacts), change)
    initial = ResultState(artifacts=dict(existing.artifacts))
    return await run_generation(
        model,
        full_request,
        "modify",
        on_update=on_update,
        initial=initial,
        fail_on_truncation=fail_on_truncation,
    )
