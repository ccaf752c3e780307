from __future__ import annotations

from dataclasses import asdict, fields, is_dataclass
from pathlib import Path
from typing import Any

from dvtimeline.models import DvTimelineConfig


DUPLICATE_POLICIES = {"last", "first", "error"}
TIE_BREAKS = {"later", "earlier"}


def load_config(config_path: str | Path | None) -> DvTimelineConfig:
    cfg = DvTimelineConfig()
    if config_path is None:
        return cfg
    try:
        import yaml
    except Exception as exc:
        raise RuntimeError("PyYAML is required to load config files.") from exc
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config root must be a mapping: {path}")
    cfg = _merge_dataclass(cfg, raw)
    validate_config(cfg)
    return cfg


def config_to_dict(config: DvTimelineConfig) -> dict[str, Any]:
    return asdict(config)


def _merge_dataclass(obj: Any, patch: dict[str, Any]) -> Any:
    if not is_dataclass(obj):
        raise TypeError("Expected dataclass object")
    for field_info in fields(obj):
        key = field_info.name
        if key not in patch:
            continue
        current = getattr(obj, key)
        incoming = patch[key]
        if is_dataclass(current) and isinstance(incoming, dict):
            _merge_dataclass(current, incoming)
        else:
            setattr(obj, key, incoming)
    return obj


def validate_config(config: DvTimelineConfig) -> None:
    for name in ("frame_tag", "frame_number_attr", "timestamp_attr", "odd_attr", "even_attr"):
        value = getattr(config.parser, name)
        if not isinstance(value, str) or not value:
            raise ValueError(f"parser.{name} must be a non-empty string")
    if config.index.duplicate_policy not in DUPLICATE_POLICIES:
        raise ValueError("index.duplicate_policy must be 'last', 'first' or 'error'")
    if config.index.tie_break not in TIE_BREAKS:
        raise ValueError("index.tie_break must be 'later' or 'earlier'")
    if (
        not isinstance(config.population.max_workers, int)
        or isinstance(config.population.max_workers, bool)
        or config.population.max_workers <= 0
    ):
        raise ValueError("population.max_workers must be > 0")
