from __future__ import annotations

"""
config_loader.py
================
TOML configuration for batch runs.

A run config is a nested dict with the sections ``[site]``, ``[detection]``,
``[filter]``, ``[calibration]``, ``[positions]`` and ``[output]``. It is
composed from an optional named profile (``config/<name>.toml``), optional
explicit files and ``--set section.key=value`` overrides, in that order.
"""

import os
import tomllib
from typing import Any, Dict, Iterable, Optional, Sequence

import tomli_w

from .model import PipelineConfig, SiteCoordinate


def load_toml(path: str) -> Dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = merge_dicts(out[k], v)
        else:
            out[k] = v
    return out


def parse_scalar(s: str) -> Any:
    """Parse a ``--set`` value: bool, int, float, ``[a, b]`` list, or string."""
    sl = s.lower()
    if sl in ("true", "false"):
        return sl == "true"
    if s.startswith("[") and s.endswith("]"):
        inner = s[1:-1].strip()
        if not inner:
            return []
        return [parse_scalar(part.strip()) for part in inner.split(",")]
    try:
        if any(c in s for c in ".eE") and not s.isalpha():
            return float(s)
        return int(s)
    except ValueError:
        return s.strip("\"'")


def apply_sets(cfg: Dict[str, Any], sets: Iterable[str]) -> Dict[str, Any]:
    for item in sets:
        if "=" not in item:
            raise ValueError(f"--set requires key=value, got: {item}")
        key, val = item.split("=", 1)
        path = key.strip().split(".")
        cursor = cfg
        for p in path[:-1]:
            if p not in cursor or not isinstance(cursor[p], dict):
                cursor[p] = {}
            cursor = cursor[p]
        cursor[path[-1]] = parse_scalar(val.strip())
    return cfg


def load_run_config(
    project_root: str,
    profile: Optional[str] = None,
    paths: Sequence[str] = (),
    set_overrides: Iterable[str] = (),
) -> Dict[str, Any]:
    """Compose the effective config dict.

    Parameters
    ----------
    project_root : str
        Directory holding ``config/``; relative ``paths`` resolve against it.
    profile : str, optional
        Name of a profile under ``config/`` (without ``.toml``).
    paths : sequence of str
        Extra TOML files merged after the profile.
    set_overrides : iterable of str
        ``section.key=value`` overrides, applied last.

    Raises
    ------
    FileNotFoundError
        A requested profile or file does not exist.
    """
    files = []
    if profile:
        files.append(os.path.join(project_root, "config", f"{profile}.toml"))
    for p in paths:
        files.append(p if os.path.isabs(p) else os.path.join(project_root, p))

    cfg: Dict[str, Any] = {}
    for path in files:
        path = os.path.normpath(path)
        if not os.path.exists(path):
            raise FileNotFoundError(f"Config file not found: {path}")
        cfg = merge_dicts(cfg, load_toml(path))

    cfg = apply_sets(cfg, set_overrides)
    for section in ("site", "detection", "filter", "calibration", "positions", "output"):
        cfg.setdefault(section, {})
    return cfg


def build_pipeline_config(cfg: Dict[str, Any]) -> PipelineConfig:
    return PipelineConfig.from_dict(cfg)


def site_from_config(cfg: Dict[str, Any]) -> Optional[SiteCoordinate]:
    """``SiteCoordinate`` from ``[site]``, or None when lat/lon are missing."""
    site = cfg.get("site") or {}
    lat = site.get("latitude")
    lon = site.get("longitude")
    if lat is None or lon is None:
        return None
    for key, value in (("latitude", lat), ("longitude", lon)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"site.{key}: expected a number, got {value!r}")
    return SiteCoordinate(float(lat), float(lon), str(site.get("name", "site")))


def dump_effective_config(cfg: Dict[str, Any]) -> str:
    return tomli_w.dumps(_drop_none(cfg))


def _drop_none(d: Dict[str, Any]) -> Dict[str, Any]:
    # TOML has no null
    out: Dict[str, Any] = {}
    for k, v in d.items():
        if v is None:
            continue
        out[k] = _drop_none(v) if isinstance(v, dict) else v
    return out


__all__ = [
    "load_toml",
    "merge_dicts",
    "parse_scalar",
    "apply_sets",
    "load_run_config",
    "build_pipeline_config",
    "site_from_config",
    "dump_effective_config",
]
