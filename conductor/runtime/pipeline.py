"""
pipeline.py - Custom workflow steps and feature status transitions.

A project may define an ordered list of pipeline steps (e.g. "Code review",
"Security audit") that a feature passes through after implementation. While
a feature sits in a step its status is ``pipeline_<step_id>``.

``get_next_status`` is the pure state machine:

    in_progress -> pipeline_<first> -> ... -> pipeline_<last> -> verified

or ``waiting_approval`` instead of ``verified`` when tests are skipped.
Per-feature excluded steps are skipped; a status naming a deleted step
resolves to the terminal status.

PipelineService persists step definitions per project at
``<project>/.conductor/pipeline.json``.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import string
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from conductor.runtime.errors import PipelineStepNotFoundError

logger = logging.getLogger(__name__)

PIPELINE_PREFIX = "pipeline_"
CONFIG_DIR = ".conductor"
CONFIG_FILE = "pipeline.json"
CONFIG_VERSION = 1

_BASE36 = string.digits + string.ascii_lowercase


class FeatureStatus(str, Enum):
    """Fixed feature statuses. Pipeline statuses are ``pipeline_<step_id>``."""

    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    WAITING_APPROVAL = "waiting_approval"
    VERIFIED = "verified"
    COMPLETED = "completed"


# =============================================================================
# Types
# =============================================================================


@dataclass
class PipelineStep:
    """One custom workflow step."""
    id: str
    name: str
    order: int
    instructions: str = ""
    color_tag: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class PipelineConfig:
    """All pipeline steps for a project."""
    version: int = CONFIG_VERSION
    steps: List[PipelineStep] = field(default_factory=list)


def pipeline_step_to_dict(step: PipelineStep) -> Dict[str, Any]:
    return {
        "id": step.id,
        "name": step.name,
        "order": step.order,
        "instructions": step.instructions,
        "color_tag": step.color_tag,
        "created_at": step.created_at,
        "updated_at": step.updated_at,
    }


def pipeline_step_from_dict(data: Dict[str, Any]) -> PipelineStep:
    return PipelineStep(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        order=int(data.get("order", 0)),
        instructions=data.get("instructions", "") or "",
        color_tag=data.get("color_tag", "") or "",
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
    )


def pipeline_config_to_dict(config: PipelineConfig) -> Dict[str, Any]:
    return {
        "version": config.version,
        "steps": [pipeline_step_to_dict(s) for s in config.steps],
    }


def pipeline_config_from_dict(data: Dict[str, Any]) -> PipelineConfig:
    """Build a PipelineConfig, dropping malformed step entries."""
    steps: List[PipelineStep] = []
    for raw in data.get("steps") or []:
        try:
            steps.append(pipeline_step_from_dict(raw))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed pipeline step %r: %s", raw, e)
    return PipelineConfig(version=int(data.get("version", CONFIG_VERSION)), steps=steps)


# =============================================================================
# Status Helpers
# =============================================================================


def is_pipeline_status(status: str) -> bool:
    return status.startswith(PIPELINE_PREFIX)


def get_step_id_from_status(status: str) -> Optional[str]:
    """Step id named by a ``pipeline_<id>`` status, else None."""
    if not is_pipeline_status(status):
        return None
    return status[len(PIPELINE_PREFIX):]


def pipeline_status(step_id: str) -> str:
    return f"{PIPELINE_PREFIX}{step_id}"


def terminal_status(skip_tests: bool) -> str:
    return FeatureStatus.WAITING_APPROVAL.value if skip_tests else FeatureStatus.VERIFIED.value


# =============================================================================
# State Machine
# =============================================================================


def get_next_status(
    current_status: Union[str, FeatureStatus],
    steps: Union[PipelineConfig, Sequence[PipelineStep], None],
    skip_tests: bool = False,
    excluded_step_ids: Optional[Iterable[str]] = None,
) -> str:
    """Compute the status a feature moves to when its current stage completes.

    Args:
        current_status: Feature's current status.
        steps: Pipeline steps (or the whole config); order need not be sorted.
        skip_tests: Whether the terminal status is waiting_approval.
        excluded_step_ids: Steps this feature skips.

    Returns:
        The next status string. Unrelated statuses are returned unchanged.
    """
    status = current_status.value if isinstance(current_status, FeatureStatus) else current_status
    if isinstance(steps, PipelineConfig):
        steps = steps.steps
    exclusions = set(excluded_step_ids or [])

    all_sorted = sorted(steps or [], key=lambda s: s.order)
    filtered = [s for s in all_sorted if s.id not in exclusions]
    final = terminal_status(skip_tests)

    if not filtered:
        if status == FeatureStatus.IN_PROGRESS.value or is_pipeline_status(status):
            return final
        return status

    if status == FeatureStatus.IN_PROGRESS.value:
        return pipeline_status(filtered[0].id)

    step_id = get_step_id_from_status(status)
    if step_id is None:
        return status

    filtered_ids = [s.id for s in filtered]
    if step_id in filtered_ids:
        index = filtered_ids.index(step_id)
        if index < len(filtered) - 1:
            return pipeline_status(filtered[index + 1].id)
        return final

    # Excluded for this feature: continue from its original position
    all_ids = [s.id for s in all_sorted]
    if step_id not in all_ids:
        logger.debug("Status %s names a deleted pipeline step", status)
        return final
    for step in all_sorted[all_ids.index(step_id) + 1:]:
        if step.id not in exclusions:
            return pipeline_status(step.id)
    return final


# =============================================================================
# Persistence
# =============================================================================


def generate_step_id() -> str:
    """``step_<base36 millis>_<6 random base36 chars>``."""
    millis = int(time.time() * 1000)
    encoded = ""
    while millis:
        millis, rem = divmod(millis, 36)
        encoded = _BASE36[rem] + encoded
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"step_{encoded or '0'}_{suffix}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _renumber(steps: List[PipelineStep]) -> None:
    for index, step in enumerate(steps):
        step.order = index


def _atomic_write_json(path: Path, data: Any, indent: int = 2) -> None:
    """Write JSON data to a file atomically (temp file + os.replace)."""
    parent = path.parent
    parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(suffix=".tmp", prefix=path.name + ".", dir=parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class PipelineService:
    """CRUD for a project's pipeline steps. Every mutation renumbers order to 0..n-1."""

    def get_config_path(self, project_path: Union[str, Path]) -> Path:
        return Path(project_path) / CONFIG_DIR / CONFIG_FILE

    def get_pipeline_config(self, project_path: Union[str, Path]) -> PipelineConfig:
        """Load the project's pipeline; missing or unreadable files yield an empty one."""
        path = self.get_config_path(project_path)
        if not path.exists():
            return PipelineConfig()
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Error reading %s: %s", path, e)
            return PipelineConfig()
        if not isinstance(data, dict):
            logger.error("Pipeline config %s is not an object", path)
            return PipelineConfig()
        return pipeline_config_from_dict(data)

    def save_pipeline_config(self, project_path: Union[str, Path], config: PipelineConfig) -> None:
        _atomic_write_json(self.get_config_path(project_path), pipeline_config_to_dict(config))
        logger.info("Pipeline config saved for project: %s", project_path)

    def get_step(self, project_path: Union[str, Path], step_id: str) -> Optional[PipelineStep]:
        for step in self.get_pipeline_config(project_path).steps:
            if step.id == step_id:
                return step
        return None

    def add_step(
        self,
        project_path: Union[str, Path],
        name: str,
        order: Optional[int] = None,
        instructions: str = "",
        color_tag: str = "",
    ) -> PipelineStep:
        """Add a step; ``order`` defaults to the end of the pipeline."""
        config = self.get_pipeline_config(project_path)
        now = _now_iso()
        step = PipelineStep(
            id=generate_step_id(),
            name=name,
            order=len(config.steps) if order is None else order,
            instructions=instructions,
            color_tag=color_tag,
            created_at=now,
            updated_at=now,
        )
        config.steps.sort(key=lambda s: s.order)
        config.steps.insert(max(0, min(step.order, len(config.steps))), step)
        _renumber(config.steps)

        self.save_pipeline_config(project_path, config)
        logger.info("Pipeline step added: %s (%s)", step.name, step.id)
        return step

    def update_step(self, project_path: Union[str, Path], step_id: str, **updates: Any) -> PipelineStep:
        """Update name, instructions, color_tag or order of a step.

        Raises:
            PipelineStepNotFoundError: If the step does not exist.
            ValueError: If an unknown or immutable field is given.
        """
        allowed = {"name", "instructions", "color_tag", "order"}
        unknown = set(updates) - allowed
        if unknown:
            raise ValueError(f"Cannot update pipeline step fields: {', '.join(sorted(unknown))}")

        config = self.get_pipeline_config(project_path)
        step = next((s for s in config.steps if s.id == step_id), None)
        if step is None:
            raise PipelineStepNotFoundError(step_id)

        new_order = updates.pop("order", None)
        for key, value in updates.items():
            setattr(step, key, value)
        step.updated_at = _now_iso()

        config.steps.sort(key=lambda s: s.order)
        if new_order is not None:
            config.steps.remove(step)
            config.steps.insert(max(0, min(int(new_order), len(config.steps))), step)
        _renumber(config.steps)
        self.save_pipeline_config(project_path, config)
        logger.info("Pipeline step updated: %s", step_id)
        return step

    def delete_step(self, project_path: Union[str, Path], step_id: str) -> None:
        config = self.get_pipeline_config(project_path)
        remaining = [s for s in config.steps if s.id != step_id]
        if len(remaining) == len(config.steps):
            raise PipelineStepNotFoundError(step_id)

        remaining.sort(key=lambda s: s.order)
        _renumber(remaining)
        config.steps = remaining
        self.save_pipeline_config(project_path, config)
        logger.info("Pipeline step deleted: %s", step_id)

    def reorder_steps(self, project_path: Union[str, Path], step_ids: Sequence[str]) -> List[PipelineStep]:
        """Put ``step_ids`` first, in the given order; unlisted steps keep their relative order after them.

        Raises:
            PipelineStepNotFoundError: If any id does not exist.
        """
        config = self.get_pipeline_config(project_path)
        by_id = {s.id: s for s in config.steps}
        for step_id in step_ids:
            if step_id not in by_id:
                raise PipelineStepNotFoundError(step_id)

        listed = list(dict.fromkeys(step_ids))
        rest = [s for s in sorted(config.steps, key=lambda s: s.order) if s.id not in listed]
        now = _now_iso()
        ordered = [by_id[step_id] for step_id in listed] + rest
        for step in ordered:
            step.updated_at = now
        _renumber(ordered)

        config.steps = ordered
        self.save_pipeline_config(project_path, config)
        logger.info("Pipeline steps reordered")
        return ordered

    def get_next_status(
        self,
        project_path: Union[str, Path],
        current_status: Union[str, FeatureStatus],
        skip_tests: bool = False,
        excluded_step_ids: Optional[Iterable[str]] = None,
    ) -> str:
        """get_next_status against the project's stored pipeline."""
        return get_next_status(
            current_status, self.get_pipeline_config(project_path), skip_tests, excluded_step_ids
        )
