import pytest

from ankiced.errors import NoteNotFoundError
from ankiced.httpapi.operations import (
    DEFAULT_OPERATION_STORE_CAPACITY,
    OperationState,
    OperationStatus,
    OperationStore,
)
from ankiced.models import CleanerProgress, DryRunSummary


def test_create_tracks_running_operation():
    store = OperationStore()
    created = store.create("op-1", "cleaner_dry_run")
    assert created.status is OperationStatus.RUNNING
    fetched = store.get("op-1")
    assert fetched.id == "op-1"
    assert fetched.kind == "cleaner_dry_run"
    assert fetched.started_at.endswith("Z")
    assert fetched.finished_at == ""


def test_get_unknown_returns_none():
    assert OperationStore().get("missing") is None


def test_progress_updates_state():
    store = OperationStore()
    store.create("op-1", "cleaner_apply")
    progress = CleanerProgress(total=4, processed=2, stage="writing")
    store.progress("op-1", progress)
    assert store.get("op-1").progress == progress


def test_succeed_copies_summary_and_keeps_total():
    store = OperationStore()
    store.create("op-1", "cleaner_dry_run")
    store.progress("op-1", CleanerProgress(total=1, processed=0, stage="started"))
    summary = DryRunSummary(processed=1, changed=1, skipped=0, errors=0)
    store.succeed("op-1", "summary", summary)
    op = store.get("op-1")
    assert op.status is OperationStatus.SUCCEEDED
    assert op.output == "summary"
    assert op.summary == summary
    assert op.progress.total == 1
    assert op.progress.processed == summary.processed
    assert op.progress.changed == summary.changed
    assert op.progress.stage == "finished"
    assert op.finished_at.endswith("Z")


def test_fail_records_error_payload():
    store = OperationStore()
    store.create("op-1", "cleaner_apply")
    store.progress("op-1", CleanerProgress(total=3, errors=1, stage="writing"))
    store.fail("op-1", NoteNotFoundError())
    op = store.get("op-1")
    assert op.status is OperationStatus.FAILED
    assert op.progress.stage == "failed"
    assert op.progress.errors == 2
    assert op.progress.total == 3
    assert op.error.code == "NOTE_NOT_FOUND"
    assert op.error.message == "note not found"
    assert op.error.correlation_id == "op-1"
    assert op.error.recommended_action == "Refresh the note list and select an existing note id."


def test_updates_on_unknown_operation_are_ignored():
    store = OperationStore()
    store.succeed("nope", "x", DryRunSummary())
    store.fail("nope", RuntimeError("boom"))
    store.progress("nope", CleanerProgress())
    assert store.get("nope") is None
    assert len(store) == 0


def test_create_replaces_existing_operation():
    store = OperationStore()
    store.create("op-1", "cleaner_apply")
    store.succeed("op-1", "done", DryRunSummary(processed=1))
    store.create("op-1", "cleaner_dry_run")
    op = store.get("op-1")
    assert op.status is OperationStatus.RUNNING
    assert op.kind == "cleaner_dry_run"
    assert len(store) == 1


def test_running_operations_are_never_evicted():
    store = OperationStore(capacity=2)
    for op_id in ("a", "b", "c"):
        store.create(op_id, "k")
    assert len(store) == 3
    assert all(store.get(op_id) is not None for op_id in ("a", "b", "c"))


def test_oldest_finished_operation_is_evicted_first():
    store = OperationStore(capacity=2)
    store.create("a", "k")
    store.create("b", "k")
    store.succeed("b", "", DryRunSummary())
    store.create("c", "k")
    assert store.get("b") is None
    assert store.get("a") is not None
    assert store.get("c") is not None
    store.succeed("a", "", DryRunSummary())
    assert len(store) == 2


def test_default_capacity_bounds_finished_history():
    store = OperationStore()
    for index in range(DEFAULT_OPERATION_STORE_CAPACITY + 3):
        op_id = f"op-{index}"
        store.create(op_id, "k")
        store.succeed(op_id, "", DryRunSummary())
    assert len(store) == DEFAULT_OPERATION_STORE_CAPACITY
    assert store.get("op-0") is None


def test_get_returns_a_copy():
    store = OperationStore()
    store.create("op-1", "k")
    copy = store.get("op-1")
    copy.status = OperationStatus.FAILED
    assert store.get("op-1").status is OperationStatus.RUNNING


@pytest.mark.parametrize("finished", [False, True])
def test_to_dict_omits_empty_optional_members(finished):
    state = OperationState(id="op-1", kind="cleaner_apply", started_at="t0")
    if finished:
        state.finished_at = "t1"
        state.output = "out"
    data = state.to_dict()
    assert data["operation_id"] == "op-1"
    assert data["status"] == "running"
    assert "progress" in data and "summary" in data
    assert "error" not in data
    assert ("finished_at" in data) is finished
    assert ("output" in data) is finished


def test_to_dict_includes_error_payload():
    store = OperationStore()
    store.create("op-1", "k")
    store.fail("op-1", NoteNotFoundError())
    data = store.get("op-1").to_dict()
    assert data["status"] == "failed"
    assert data["error"]["code"] == "NOTE_NOT_FOUND"
    assert data["progress"]["stage"] == "failed"