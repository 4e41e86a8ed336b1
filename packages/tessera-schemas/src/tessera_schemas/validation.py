"""Validation entrypoints for config and progress schemas."""

from __future__ import annotations

from tessera_schemas.config import PipelineConfig
from tessera_schemas.primitives import JsonValue
from tessera_schemas.progress import ProgressUpdate


def validate_pipeline_config(payload: dict[str, JsonValue]) -> PipelineConfig:
    """Validate pipeline configuration payload.

    Args:
        payload: Raw pipeline configuration payload, e.g. parsed TOML.

    Returns:
        PipelineConfig: Validated pipeline configuration.
    """
    return PipelineConfig.model_validate(payload, strict=False)


def validate_progress_monotonic(updates: list[ProgressUpdate]) -> None:
    """Ensure progress never decreases within a run of one stage.

    Args:
        updates: Progress updates in emission order.

    Raises:
        ValueError: If a stage run reports a lower percent than before.
    """
    last_seen: dict[tuple[str, str], float] = {}
    for update in updates:
        key = (str(update.run_id), str(update.stage))
        previous = last_seen.get(key)
        if previous is not None and update.progress_percent < previous:
            raise ValueError(
                f"progress decreased for {update.stage} "
                f"({previous} -> {update.progress_percent})"
            )
        last_seen[key] = update.progress_percent
