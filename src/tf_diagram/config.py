from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .core.classifier import DEFAULT_RESOURCE_PREFIXES

# --------
# Defaults
# --------
COMMANDS = ("render", "refresh", "categories", "tags", "show")
ALLOWED_CONFIG_KEYS = {
    "graph",
    "plan",
    "mapping",
    "outdir",
    "state_file",
    "detailed",
    "show_inactive",
    "exclude_categories",
    "tags",
    "resource_prefixes",
    "group",
    "show_unknown",
    "json_logs",
    "log_level",
}
BOOL_CONFIG_KEYS = {"detailed", "show_inactive", "show_unknown", "json_logs"}
LIST_CONFIG_KEYS = {"exclude_categories", "tags", "resource_prefixes"}
PATH_CONFIG_KEYS = {"graph", "plan", "mapping", "outdir", "state_file"}
STR_CONFIG_KEYS = {"group", "log_level"}


@dataclass(frozen=True)
class RunConfig:
    # Inputs
    graph: Optional[Path] = None
    plan: Optional[Path] = None
    mapping: Optional[Path] = None  # None -> packaged table
    state_file: Optional[Path] = None

    # Output
    outdir: Path = Path("out")

    # Pass flags; None means "not set" so refresh can fall back to stored state
    detailed: Optional[bool] = None
    show_inactive: Optional[bool] = None
    exclude_categories: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    resource_prefixes: List[str] = field(default_factory=lambda: list(DEFAULT_RESOURCE_PREFIXES))
    # CLI-only: flip stored selections on or off for this pass
    toggle_categories: List[str] = field(default_factory=list)
    toggle_tags: List[str] = field(default_factory=list)

    # show
    group: Optional[str] = None
    show_unknown: bool = False

    # Logging
    json_logs: bool = False
    log_level: str = "INFO"

    # Internal/derived
    generated_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _split_list(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Config field '{key}' must be a boolean")


def _coerce_list(key: str, value: Any) -> List[str]:
    if isinstance(value, str):
        return _split_list(value)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return [v.strip() for v in value if v.strip()]
    raise ValueError(f"Config field '{key}' must be a list of strings or comma-separated string")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS:
            continue
        if value is None:
            normalized[key] = None
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in LIST_CONFIG_KEYS:
            normalized[key] = _coerce_list(key, value)
        elif key in PATH_CONFIG_KEYS:
            if not isinstance(value, (str, Path)):
                raise ValueError(f"Config field '{key}' must be a string path")
            normalized[key] = value
        elif key in STR_CONFIG_KEYS:
            if not isinstance(value, str):
                raise ValueError(f"Config field '{key}' must be a string")
            normalized[key] = value
    return _compact_dict(normalized)


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def _timestamp_dir(base: Path) -> Path:
    return base / datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _cli_list(values: Optional[List[str]]) -> Optional[List[str]]:
    if not values:
        return None
    out: List[str] = []
    for v in values:
        out.extend(_split_list(v))
    return out


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tf-diagram",
        description="Group an infrastructure dependency graph into diagram resource groups",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument("--json-logs", action=argparse.BooleanOptionalAction, default=None, help="Enable JSON logs")
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument("--graph", type=Path, default=None, help="DOT graph file (terraform graph output)")
        p.add_argument("--plan", type=Path, default=None, help="Plan JSON file (terraform show -json output)")
        p.add_argument("--mapping", type=Path, default=None, help="Custom mapping table CSV")
        p.add_argument("--state-file", type=Path, default=None, help="JSON file used to persist the last pass")
        p.add_argument(
            "--detailed",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Add ungrouped mapped resources as their own groups",
        )
        p.add_argument(
            "--show-inactive",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Keep groups without planned changes",
        )
        p.add_argument(
            "--exclude-category",
            dest="exclude_categories",
            action="append",
            default=None,
            help="Category to hide (repeatable or comma-separated)",
        )
        p.add_argument(
            "--tag",
            dest="tags",
            action="append",
            default=None,
            help="Only keep groups carrying this tag key (repeatable or comma-separated)",
        )
        p.add_argument(
            "--resource-prefix",
            dest="resource_prefixes",
            action="append",
            default=None,
            help="Resource type prefix treated as a resource block (default: aws_)",
        )
        p.add_argument(
            "--toggle-category",
            dest="toggle_categories",
            action="append",
            default=None,
            help="Flip a category in or out of the stored exclusions (repeatable or comma-separated)",
        )
        p.add_argument(
            "--toggle-tag",
            dest="toggle_tags",
            action="append",
            default=None,
            help="Flip a tag key in or out of the stored selection (repeatable or comma-separated)",
        )

    p_render = subparsers.add_parser("render", help="Resolve groups and write groups.json and diagram.mmd")
    add_common(p_render)
    p_render.add_argument("--outdir", type=Path, default=None, help="Output directory (default out/TS)")

    p_refresh = subparsers.add_parser("refresh", help="Re-run the last pass from the state file")
    add_common(p_refresh)
    p_refresh.add_argument("--outdir", type=Path, default=None, help="Output directory (default out/TS)")

    p_cat = subparsers.add_parser("categories", help="List categories of the resolved groups")
    add_common(p_cat)

    p_tags = subparsers.add_parser("tags", help="List tag names found in planned changes")
    add_common(p_tags)

    p_show = subparsers.add_parser("show", help="Print the change summary of a group")
    add_common(p_show)
    p_show.add_argument("--group", default=None, help="Group id (resource address of the main block)")
    p_show.add_argument(
        "--show-unknown",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Also list attributes only known after apply",
    )
    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is one of render|refresh|categories|tags|show
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    base: Dict[str, Any] = {
        "outdir": None,
        "exclude_categories": [],
        "tags": [],
        "resource_prefixes": list(DEFAULT_RESOURCE_PREFIXES),
        "show_unknown": False,
        "json_logs": False,
        "log_level": "INFO",
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_lists = {
        "exclude_categories": _env_str("TF_DIAGRAM_EXCLUDE_CATEGORIES"),
        "tags": _env_str("TF_DIAGRAM_TAGS"),
        "resource_prefixes": _env_str("TF_DIAGRAM_RESOURCE_PREFIXES"),
    }
    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "graph": _env_str("TF_DIAGRAM_GRAPH"),
            "plan": _env_str("TF_DIAGRAM_PLAN"),
            "mapping": _env_str("TF_DIAGRAM_MAPPING"),
            "outdir": _env_str("TF_DIAGRAM_OUTDIR"),
            "state_file": _env_str("TF_DIAGRAM_STATE_FILE"),
            "detailed": _env_bool("TF_DIAGRAM_DETAILED"),
            "show_inactive": _env_bool("TF_DIAGRAM_SHOW_INACTIVE"),
            "json_logs": _env_bool("TF_DIAGRAM_JSON_LOGS"),
            "log_level": _env_str("TF_DIAGRAM_LOG_LEVEL"),
            **{k: _split_list(v) for k, v in env_lists.items() if v},
        }
    )

    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "graph": getattr(ns, "graph", None),
            "plan": getattr(ns, "plan", None),
            "mapping": getattr(ns, "mapping", None),
            "outdir": getattr(ns, "outdir", None),
            "state_file": getattr(ns, "state_file", None),
            "detailed": getattr(ns, "detailed", None),
            "show_inactive": getattr(ns, "show_inactive", None),
            "exclude_categories": _cli_list(getattr(ns, "exclude_categories", None)),
            "tags": _cli_list(getattr(ns, "tags", None)),
            "resource_prefixes": _cli_list(getattr(ns, "resource_prefixes", None)),
            "group": getattr(ns, "group", None),
            "show_unknown": getattr(ns, "show_unknown", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    def _path(key: str) -> Optional[Path]:
        return Path(merged[key]) if merged.get(key) else None

    outdir = _path("outdir") or _timestamp_dir(Path("out"))
    detailed = merged.get("detailed")
    show_inactive = merged.get("show_inactive")

    cfg = RunConfig(
        graph=_path("graph"),
        plan=_path("plan"),
        mapping=_path("mapping"),
        state_file=_path("state_file"),
        outdir=outdir,
        detailed=bool(detailed) if detailed is not None else None,
        show_inactive=bool(show_inactive) if show_inactive is not None else None,
        exclude_categories=list(merged.get("exclude_categories") or []),
        tags=list(merged.get("tags") or []),
        resource_prefixes=list(merged.get("resource_prefixes") or DEFAULT_RESOURCE_PREFIXES),
        toggle_categories=_cli_list(getattr(ns, "toggle_categories", None)) or [],
        toggle_tags=_cli_list(getattr(ns, "toggle_tags", None)) or [],
        group=merged.get("group"),
        show_unknown=bool(merged.get("show_unknown")),
        json_logs=bool(merged.get("json_logs")),
        log_level=str(merged.get("log_level") or "INFO").upper(),
    )
    return command, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return {
        "graph": str(cfg.graph) if cfg.graph else None,
        "plan": str(cfg.plan) if cfg.plan else None,
        "mapping": str(cfg.mapping) if cfg.mapping else None,
        "state_file": str(cfg.state_file) if cfg.state_file else None,
        "outdir": str(cfg.outdir),
        "detailed": cfg.detailed,
        "show_inactive": cfg.show_inactive,
        "exclude_categories": cfg.exclude_categories,
        "tags": cfg.tags,
        "resource_prefixes": cfg.resource_prefixes,
        "toggle_categories": cfg.toggle_categories,
        "toggle_tags": cfg.toggle_tags,
        "group": cfg.group,
        "show_unknown": cfg.show_unknown,
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
        "generated_at": cfg.generated_at,
    }
