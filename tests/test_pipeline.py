"""Tests for pipeline step configuration and feature status transitions.

These tests verify that:
1. get_next_status walks in_progress -> steps -> terminal status
2. Excluded steps are skipped, including when a feature sits in one
3. A status naming a deleted step resolves to the terminal status
4. Unrelated statuses are returned unchanged
5. PipelineService CRUD keeps order contiguous and persists atomically
"""

from __future__ import annotations

import json
import re
from unittest.mock import patch

import pytest

from conductor.runtime.errors import PipelineStepNotFoundError
from conductor.runtime.pipeline import (
    FeatureStatus,
    PipelineConfig,
    PipelineService,
    PipelineStep,
    generate_step_id,
    get_next_status,
    get_step_id_from_status,
    is_pipeline_status,
    pipeline_config_from_dict,
)


@pytest.fixture
def steps():
    """Three steps deliberately stored out of order."""
    return [
        PipelineStep(id="c", name="Docs", order=2),
        PipelineStep(id="a", name="Review", order=0),
        PipelineStep(id="b", name="Security", order=1),
    ]


class TestGetNextStatus:
    """Tests for the pure state machine."""

    def test_walks_all_steps_in_order(self, steps):
        assert get_next_status("in_progress", steps) == "pipeline_a"
        assert get_next_status("pipeline_a", steps) == "pipeline_b"
        assert get_next_status("pipeline_b", steps) == "pipeline_c"
        assert get_next_status("pipeline_c", steps) == "verified"

    def test_skip_tests_ends_in_waiting_approval(self, steps):
        assert get_next_status("pipeline_c", steps, skip_tests=True) == "waiting_approval"

    def test_accepts_enum_and_config(self, steps):
        config = PipelineConfig(steps=steps)
        assert get_next_status(FeatureStatus.IN_PROGRESS, config) == "pipeline_a"

    def test_no_steps(self):
        assert get_next_status("in_progress", []) == "verified"
        assert get_next_status("in_progress", None, skip_tests=True) == "waiting_approval"
        assert get_next_status("pipeline_gone", []) == "verified"

    def test_all_steps_excluded(self, steps):
        assert get_next_status("in_progress", steps, excluded_step_ids=["a", "b", "c"]) == "verified"

    def test_excluded_step_skipped(self, steps):
        assert get_next_status("in_progress", steps, excluded_step_ids=["a"]) == "pipeline_b"
        assert get_next_status("pipeline_a", steps, excluded_step_ids=["b"]) == "pipeline_c"

    def test_current_step_excluded_continues_from_its_position(self, steps):
        # Exclusion added while the feature was already in step b
        assert get_next_status("pipeline_b", steps, excluded_step_ids=["b"]) == "pipeline_c"
        assert get_next_status("pipeline_a", steps, excluded_step_ids=["a", "b"]) == "pipeline_c"
        assert get_next_status("pipeline_b", steps, excluded_step_ids=["b", "c"]) == "verified"

    def test_deleted_step_goes_terminal(self, steps):
        assert get_next_status("pipeline_deleted", steps) == "verified"
        assert get_next_status("pipeline_deleted", steps, skip_tests=True) == "waiting_approval"

    @pytest.mark.parametrize("status", ["backlog", "verified", "waiting_approval", "completed"])
    def test_unrelated_status_unchanged(self, steps, status):
        assert get_next_status(status, steps) == status
        assert get_next_status(status, []) == status


class TestStatusHelpers:

    def test_pipeline_status_parsing(self):
        assert is_pipeline_status("pipeline_step_1")
        assert not is_pipeline_status("in_progress")
        assert get_step_id_from_status("pipeline_step_abc_123") == "step_abc_123"
        assert get_step_id_from_status("verified") is None

    def test_generate_step_id_format(self):
        step_id = generate_step_id()
        assert re.match(r"^step_[0-9a-z]+_[0-9a-z]{6}$", step_id)
        assert generate_step_id() != step_id

    def test_malformed_steps_dropped(self):
        config = pipeline_config_from_dict({
            "version": 1,
            "steps": [{"id": "ok", "name": "Fine", "order": 0}, {"name": "no id"}, "garbage"],
        })
        assert [s.id for s in config.steps] == ["ok"]


class TestPipelineService:
    """Tests for persisted step CRUD."""

    @pytest.fixture
    def service(self):
        return PipelineService()

    def test_missing_config_is_empty(self, service, tmp_path):
        config = service.get_pipeline_config(tmp_path)
        assert config.version == 1
        assert config.steps == []

    def test_corrupt_config_is_empty(self, service, tmp_path):
        path = service.get_config_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        assert service.get_pipeline_config(tmp_path).steps == []

    def test_add_step_persists(self, service, tmp_path):
        step = service.add_step(tmp_path, "Review", instructions="Check style", color_tag="blue")

        data = json.loads(service.get_config_path(tmp_path).read_text())
        assert data["version"] == 1
        assert data["steps"][0]["id"] == step.id
        assert data["steps"][0]["instructions"] == "Check style"
        assert data["steps"][0]["created_at"] == step.created_at
        assert step.order == 0

    def test_add_step_appends_by_default(self, service, tmp_path):
        first = service.add_step(tmp_path, "Review")
        second = service.add_step(tmp_path, "Security")

        steps = service.get_pipeline_config(tmp_path).steps
        assert [(s.id, s.order) for s in steps] == [(first.id, 0), (second.id, 1)]

    def test_add_step_at_position(self, service, tmp_path):
        a = service.add_step(tmp_path, "A")
        b = service.add_step(tmp_path, "B")
        c = service.add_step(tmp_path, "C", order=1)
        far = service.add_step(tmp_path, "Far", order=99)

        steps = service.get_pipeline_config(tmp_path).steps
        assert [s.id for s in steps] == [a.id, c.id, b.id, far.id]
        assert [s.order for s in steps] == [0, 1, 2, 3]

    def test_update_step_fields(self, service, tmp_path):
        step = service.add_step(tmp_path, "Review")

        updated = service.update_step(tmp_path, step.id, name="Code review", color_tag="red")

        stored = service.get_step(tmp_path, step.id)
        assert updated.name == "Code review"
        assert stored.name == "Code review"
        assert stored.color_tag == "red"
        assert stored.created_at == step.created_at

    def test_update_step_order_moves_step(self, service, tmp_path):
        a = service.add_step(tmp_path, "A")
        b = service.add_step(tmp_path, "B")
        c = service.add_step(tmp_path, "C")

        service.update_step(tmp_path, c.id, order=0)

        steps = service.get_pipeline_config(tmp_path).steps
        assert [s.id for s in steps] == [c.id, a.id, b.id]
        assert [s.order for s in steps] == [0, 1, 2]

    def test_update_rejects_immutable_fields(self, service, tmp_path):
        step = service.add_step(tmp_path, "Review")

        with pytest.raises(ValueError, match="id"):
            service.update_step(tmp_path, step.id, id="other")

    def test_update_missing_step(self, service, tmp_path):
        with pytest.raises(PipelineStepNotFoundError) as exc_info:
            service.update_step(tmp_path, "step_missing", name="x")
        assert str(exc_info.value) == "Pipeline step not found: step_missing"

    def test_delete_step_renumbers(self, service, tmp_path):
        a = service.add_step(tmp_path, "A")
        b = service.add_step(tmp_path, "B")
        c = service.add_step(tmp_path, "C")

        service.delete_step(tmp_path, b.id)

        steps = service.get_pipeline_config(tmp_path).steps
        assert [(s.id, s.order) for s in steps] == [(a.id, 0), (c.id, 1)]

    def test_delete_missing_step(self, service, tmp_path):
        with pytest.raises(PipelineStepNotFoundError):
            service.delete_step(tmp_path, "step_missing")

    def test_reorder_steps(self, service, tmp_path):
        a = service.add_step(tmp_path, "A")
        b = service.add_step(tmp_path, "B")
        c = service.add_step(tmp_path, "C")

        ordered = service.reorder_steps(tmp_path, [c.id, a.id, b.id])

        assert [s.id for s in ordered] == [c.id, a.id, b.id]
        stored = service.get_pipeline_config(tmp_path).steps
        assert [(s.id, s.order) for s in stored] == [(c.id, 0), (a.id, 1), (b.id, 2)]

    def test_reorder_partial_keeps_unlisted_steps(self, service, tmp_path):
        a = service.add_step(tmp_path, "A")
        b = service.add_step(tmp_path, "B")
        c = service.add_step(tmp_path, "C")

        ordered = service.reorder_steps(tmp_path, [c.id, c.id])

        assert [s.id for s in ordered] == [c.id, a.id, b.id]

    def test_reorder_unknown_id(self, service, tmp_path):
        service.add_step(tmp_path, "A")

        with pytest.raises(PipelineStepNotFoundError):
            service.reorder_steps(tmp_path, ["step_missing"])

    def test_deleting_current_step_sends_feature_to_terminal(self, service, tmp_path):
        a = service.add_step(tmp_path, "A")
        service.add_step(tmp_path, "B")
        service.delete_step(tmp_path, a.id)

        assert service.get_next_status(tmp_path, f"pipeline_{a.id}") == "verified"

    def test_service_next_status_uses_stored_order(self, service, tmp_path):
        a = service.add_step(tmp_path, "A")
        b = service.add_step(tmp_path, "B")
        service.reorder_steps(tmp_path, [b.id, a.id])

        assert service.get_next_status(tmp_path, "in_progress") == f"pipeline_{b.id}"
        assert service.get_next_status(tmp_path, f"pipeline_{b.id}") == f"pipeline_{a.id}"
        assert service.get_next_status(tmp_path, f"pipeline_{a.id}", skip_tests=True) == "waiting_approval"

    def test_failed_write_leaves_previous_file(self, service, tmp_path):
        service.add_step(tmp_path, "A")
        path = service.get_config_path(tmp_path)
        before = path.read_text()

        with patch("conductor.runtime.pipeline.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                service.add_step(tmp_path, "B")

        assert path.read_text() == before
        assert [p.name for p in path.parent.iterdir()] == ["pipeline.json"]
