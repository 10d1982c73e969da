"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

from form_guard.security import PathSanitizerConfig

CONFIG_FILE_NAME = "form_guard.toml"
DEFAULT_TEMPLATES_DIR = "templates"
DEFAULT_DATA_DIR = ".form_guard"

# Keys that would weaken path policy; accepted nowhere.
RELAXATION_KEYS = ("allow_traversal", "allow_absolute")


@dataclass(slots=True, frozen=True)
class GuardConfig:
    """Fully merged path guard configuration."""

    root: Path
    data_dir: Path
    sanitizer: PathSanitizerConfig

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot."""
        return {
            "root": str(self.root),
            "data_dir": str(self.data_dir),
            "paths": {
                "allowed_base_paths": list(self.sanitizer.allowed_base_paths),
                "allow_symlinks": self.sanitizer.allow_symlinks,
            },
        }


@dataclass(slots=True, frozen=True)
class GuardOverrides:
    """Optional startup overrides applied at highest precedence."""

    data_dir: Path | None = None
    allowed_base_paths: tuple[str, ...] | None = None
    allow_symlinks: bool | None = None


def default_config(root: Path) -> GuardConfig:
    """Build default config for a given deployment root."""
    absolute_root = Path(os.path.abspath(root))
    return GuardConfig(
        root=absolute_root,
        data_dir=absolute_root / DEFAULT_DATA_DIR,
        sanitizer=PathSanitizerConfig(
            allowed_base_paths=(str(absolute_root / DEFAULT_TEMPLATES_DIR),),
            allow_symlinks=False,
        ),
    )


def load_config_file(root: Path) -> dict[str, object]:
    """Load optional form_guard.toml from the deployment root."""
    config_path = root / CONFIG_FILE_NAME
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"{CONFIG_FILE_NAME} must contain a top-level table.")
    return payload


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{key}' must be a table.")
    return value


def _base_paths(value: object, root: Path, name: str) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Config field '{name}' must be a list of strings.")
    if not value:
        raise ValueError(f"Config field '{name}' must contain at least one path.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ValueError(f"Config field '{name}' must contain only non-empty strings.")
        candidate = Path(item)
        if not candidate.is_absolute():
            candidate = root / candidate
        output.append(os.path.abspath(candidate))
    return tuple(output)


def merge_config(
    base: GuardConfig, payload: dict[str, object], overrides: GuardOverrides
) -> GuardConfig:
    """Merge defaults, config file, then startup overrides."""
    paths_payload = _get_table(payload, "paths")
    audit_payload = _get_table(payload, "audit")

    for key in RELAXATION_KEYS:
        if key in paths_payload:
            raise ValueError(
                f"Config field 'paths.{key}' is not supported; "
                "traversal and absolute path checks cannot be relaxed."
            )

    allowed_base_paths = base.sanitizer.allowed_base_paths
    if "allowed_base_paths" in paths_payload:
        allowed_base_paths = _base_paths(
            paths_payload["allowed_base_paths"], base.root, "paths.allowed_base_paths"
        )

    allow_symlinks = base.sanitizer.allow_symlinks
    if "allow_symlinks" in paths_payload:
        raw_allow_symlinks = paths_payload["allow_symlinks"]
        if not isinstance(raw_allow_symlinks, bool):
            raise ValueError("Config field 'paths.allow_symlinks' must be a boolean.")
        allow_symlinks = raw_allow_symlinks

    data_dir = base.data_dir
    if "data_dir" in audit_payload:
        raw_data_dir = audit_payload["data_dir"]
        if not isinstance(raw_data_dir, str) or not raw_data_dir.strip():
            raise ValueError("Config field 'audit.data_dir' must be a non-empty string.")
        data_dir = Path(raw_data_dir)
        if not data_dir.is_absolute():
            data_dir = base.root / data_dir

    merged = GuardConfig(
        root=base.root,
        data_dir=data_dir,
        sanitizer=PathSanitizerConfig(
            allowed_base_paths=allowed_base_paths,
            allow_symlinks=allow_symlinks,
        ),
    )
    return apply_overrides(merged, overrides)


def apply_overrides(config: GuardConfig, overrides: GuardOverrides) -> GuardConfig:
    """Apply startup overrides at highest precedence."""
    allowed_base_paths = config.sanitizer.allowed_base_paths
    if overrides.allowed_base_paths is not None:
        allowed_base_paths = _base_paths(
            overrides.allowed_base_paths, config.root, "overrides.allowed_base_paths"
        )
    allow_symlinks = (
        overrides.allow_symlinks
        if overrides.allow_symlinks is not None
        else config.sanitizer.allow_symlinks
    )
    data_dir = overrides.data_dir or config.data_dir
    return GuardConfig(
        root=config.root,
        data_dir=data_dir.resolve(),
        sanitizer=PathSanitizerConfig(
            allowed_base_paths=allowed_base_paths,
            allow_symlinks=allow_symlinks,
        ),
    )


def load_effective_config(root: Path, overrides: GuardOverrides | None = None) -> GuardConfig:
    """Load effective config using merge order defaults -> config file -> overrides."""
    absolute_root = Path(os.path.abspath(root))
    base = default_config(absolute_root)
    payload = load_config_file(absolute_root)
    return merge_config(base, payload, overrides or GuardOverrides())
