from __future__ import annotations

import copy
import os
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

# Optional readers
try:
    import yaml  # type: ignore
except Exception:  # pragma: no cover
    yaml = None  # type: ignore

try:
    import tomllib  # py3.11+
except Exception:  # pragma: no cover
    tomllib = None  # type: ignore


class AttrDict(dict):
    """Dict with attribute access (x.y)."""
    def __getattr__(self, name: str):
        try:
            return self[name]
        except KeyError as e:
            raise AttributeError(name) from e
    def __setattr__(self, name: str, value: Any) -> None:
        self[name] = value
    def __delattr__(self, name: str) -> None:
        del self[name]


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


def _default_config() -> Dict[str, Any]:
    root = os.getenv("LMS_PROJECT_ROOT", ".")
    return {
        # Flat keys, as written by the bench config.json ----------
        "check_duplicate_cans": _env_flag("LMS_CHECK_DUPLICATE_CANS", "true"),
        "enable_numeric_validation": _env_flag("LMS_ENABLE_NUMERIC_VALIDATION", "true"),
        "backup_on_save": _env_flag("LMS_BACKUP_ON_SAVE", "true"),
        "max_samples_per_job": int(os.getenv("LMS_MAX_SAMPLES_PER_JOB", "1000")),
        "log_level": os.getenv("LMS_LOG_LEVEL", "info"),
        # Nested sections -------------------------------------------
        "paths": {
            "project_root": root,
            "projects_dir": os.getenv("LMS_PROJECTS_DIR") or os.path.join(root, "projects"),
            "work_dir": os.getenv("LMS_WORK_DIR") or os.path.join(root, "ex_project"),
            "oven_ledger": os.getenv("LMS_OVEN_LEDGER") or os.path.join(root, "oven_tracking.json"),
        },
        "capture": {
            "check_duplicate_cans": _env_flag("LMS_CHECK_DUPLICATE_CANS", "true"),
            "enable_numeric_validation": _env_flag("LMS_ENABLE_NUMERIC_VALIDATION", "true"),
            "backup_on_save": _env_flag("LMS_BACKUP_ON_SAVE", "true"),
            "max_samples_per_job": int(os.getenv("LMS_MAX_SAMPLES_PER_JOB", "1000")),
            "min_sample_weight": float(os.getenv("LMS_MIN_SAMPLE_WEIGHT", "100")),
        },
        "suction_export": {
            "page_capacity": int(os.getenv("LMS_SUCTION_PAGE_CAPACITY", "37")),
        },
        "logging": {
            "level": os.getenv("LMS_LOG_LEVEL", "info"),
        },
        "server": {
            "host": os.getenv("SERVER_HOST", "0.0.0.0"),
            "port": int(os.getenv("SERVER_PORT", "7600")),
            "debug": _env_flag("DEBUG", "false"),
        },
    }


# Snapshot taken at import; load_config() re-reads the environment.
DEFAULT_CONFIG: AttrDict = AttrDict(_default_config())

_FLAT_CAPTURE_KEYS = (
    "check_duplicate_cans",
    "enable_numeric_validation",
    "backup_on_save",
    "max_samples_per_job",
)


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    ext = path.suffix.lower()
    if ext == ".json":
        return json.loads(path.read_text(encoding="utf-8"))
    if ext in {".yml", ".yaml"} and yaml is not None:
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if ext == ".toml" and tomllib is not None:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    # Fallback: try JSON
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception as e:
        raise RuntimeError(f"Unsupported config format for {path}. {e}")


def _deep_merge(dst: Dict[str, Any], src: Dict[str, Any]) -> Dict[str, Any]:
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            _deep_merge(dst[k], v)
        else:
            dst[k] = v
    return dst


def _ensure_compat_keys(cfg: Dict[str, Any], overrides: Dict[str, Any]) -> None:
    """Keep the flat bench keys and the nested sections in agreement.

    Whichever shape the config file provided wins; the other is synthesized
    from it so both old and new readers see the same values."""
    capture = cfg.setdefault("capture", {})
    nested = overrides.get("capture") if isinstance(overrides.get("capture"), dict) else {}
    for key in _FLAT_CAPTURE_KEYS:
        if key in overrides:
            capture[key] = overrides[key]
        elif key in nested:
            cfg[key] = nested[key]
        capture.setdefault(key, cfg.get(key))
        cfg[key] = capture[key]

    log_cfg = cfg.setdefault("logging", {})
    if "log_level" in overrides:
        log_cfg["level"] = overrides["log_level"]
    cfg["log_level"] = log_cfg.setdefault("level", cfg.get("log_level", "info"))

    paths = cfg.setdefault("paths", {})
    root = str(paths.get("project_root") or ".")
    given = overrides.get("paths") if isinstance(overrides.get("paths"), dict) else {}
    # Derived paths follow a project_root override unless set explicitly.
    if "project_root" in given:
        if "projects_dir" not in given:
            paths["projects_dir"] = os.path.join(root, "projects")
        if "work_dir" not in given:
            paths["work_dir"] = os.path.join(root, "ex_project")
        if "oven_ledger" not in given:
            paths["oven_ledger"] = os.path.join(root, "oven_tracking.json")


def load_config(config_path: Optional[str] = None) -> AttrDict:
    """Loader used by run.py and the session registry.
    - Start from the environment-driven defaults
    - If a config file is provided (or named by LMS_CONFIG), deep-merge it on top
    - Ensure flat and nested keys agree
    - Return an AttrDict for dict+attribute access
    """
    base = _default_config()
    overrides: Dict[str, Any] = {}
    config_path = config_path or os.getenv("LMS_CONFIG")
    if config_path:
        p = Path(config_path)
        if p.exists():
            overrides = _read_config_file(p) or {}
            _deep_merge(base, copy.deepcopy(overrides))
    _ensure_compat_keys(base, overrides)
    return AttrDict(base)


@dataclass(frozen=True)
class LabSettings:
    project_root: Path = Path(".")
    projects_dir: Path = Path("projects")
    work_dir: Path = Path("ex_project")
    oven_ledger_path: Path = Path("oven_tracking.json")
    check_duplicate_cans: bool = True
    enable_numeric_validation: bool = True
    backup_on_save: bool = True
    max_samples_per_job: int = 1000
    min_sample_weight: float = 100.0
    suction_page_capacity: int = 37

    @classmethod
    def for_root(cls, root: Path, **overrides: Any) -> "LabSettings":
        root = Path(root)
        values: Dict[str, Any] = {
            "project_root": root,
            "projects_dir": root / "projects",
            "work_dir": root / "ex_project",
            "oven_ledger_path": root / "oven_tracking.json",
        }
        values.update(overrides)
        return cls(**values)


def get_lab_settings(config_path: Optional[str] = None) -> LabSettings:
    cfg = load_config(config_path)
    paths = cfg.get("paths", {})
    capture = cfg.get("capture", {})
    export = cfg.get("suction_export", {})
    return LabSettings(
        project_root=Path(paths.get("project_root") or "."),
        projects_dir=Path(paths["projects_dir"]),
        work_dir=Path(paths["work_dir"]),
        oven_ledger_path=Path(paths["oven_ledger"]),
        check_duplicate_cans=bool(capture.get("check_duplicate_cans", True)),
        enable_numeric_validation=bool(capture.get("enable_numeric_validation", True)),
        backup_on_save=bool(capture.get("backup_on_save", True)),
        max_samples_per_job=int(capture.get("max_samples_per_job", 1000)),
        min_sample_weight=float(capture.get("min_sample_weight", 100.0)),
        suction_page_capacity=int(export.get("page_capacity", 37)),
    )


def configure_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
