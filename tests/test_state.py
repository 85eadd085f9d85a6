import pytest

from modforge.protocol import ArtifactUpdate, CompletedUpdate, FailedUpdate, PlanUpdate
from modforge.state import GenerationStatus, ResultState


def test_apply_merges_updates_in_order() -> None:
    state = ResultState()
    state.apply(PlanUpdate(plan=("1. a", "2. b")))
    state.apply(ArtifactUpdate(artifacts={"Mod/Mod.php": "<?php"}))
    state.apply(CompletedUpdate(message="done"))
    assert state.plan == ["1. a", "2. b"]
    assert state.artifacts == {"Mod/Mod.php": "<?php"}
    assert state.status is GenerationStatus.COMPLETED
    assert state.completion_message == "done"
    assert state.is_terminal


def test_failed_update_sets_error_only() -> None:
    state = ResultState().apply(PlanUpdate(plan=("1. a",))).apply(FailedUpdate(error="boom"))
    assert state.status is GenerationStatus.FAILED
    assert state.error == "boom"
    assert state.completion_message is None
    assert state.plan == ["1. a"]


def test_artifact_update_does_not_alias_snapshot() -> None:
    update = ArtifactUpdate(artifacts={"a.php": "A"})
    state = ResultState().apply(update)
    state.artifacts["b.php"] = "B"
    assert update.artifacts == {"a.php": "A"}


def test_unknown_update_is_rejected() -> None:
    with pytest.raises(TypeError):
        ResultState().apply("plan")  # type: ignore[arg-type]


def test_progress_percent() -> None:
    state = ResultState()
    assert state.progress_percent() == 0
    state.apply(PlanUpdate(plan=("1", "2", "3")))
    assert state.progress_percent() == 60
    state.apply(ArtifactUpdate(artifacts={"M/M.php": "x"}))
    assert state.progress_percent() == 80
    state.apply(CompletedUpdate(message="ok"))
    assert state.progress_percent() == 100


def test_module_name_from_first_artifact() -> None:
    assert ResultState().module_name() is None
    state = ResultState(artifacts={"BestSellers/BestSellers.php": "", "BestSellers/config.xml": ""})
    assert state.module_name() == "BestSellers"


def test_state_serializes_status_value() -> None:
    state = ResultState().apply(CompletedUpdate(message="ok"))
    assert state.model_dump(mode="json")["status"] == "completed"
