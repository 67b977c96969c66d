from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from .config import RunConfig, dump_config, load_run_config
from .core.filters import FilterState
from .core.grouping import GroupingOptions
from .core.pipeline import Resolution, resolve
from .export.groups import resolution_payload, write_groups
from .export.mermaid import write_mermaid
from .graph.dot import parse_dot
from .logging import LogConfig, add_run_log_file, get_logger, setup_logging
from .mapping import load_mapping_table
from .plan.model import parse_plan
from .report.changes import describe_changes, summarize_states
from .state.store import StateStore
from .util.errors import ConfigError, GraphLoadError, PlanLoadError, as_exit_code
from .util.events import StepTimers, log_event

LOG = get_logger(__name__)

RUN_LOG_PATH = Path("logs") / "debug.log"


@dataclass(frozen=True)
class PassInputs:
    graph_text: str
    plan_text: Optional[str]
    detailed: bool
    show_inactive: bool
    filter_state: FilterState


def _read_text(path: Path, error_cls: type) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise error_cls(f"Failed to read {path}: {e}") from e


def _stored_plan_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _gather_inputs(cfg: RunConfig, *, require_state: bool = False) -> PassInputs:
    """
    Merge CLI/config inputs with the stored state; explicit settings win.
    """
    stored: Dict[str, Any] = {}
    if cfg.state_file is not None:
        stored = StateStore(cfg.state_file).get()
    elif require_state:
        raise ConfigError("refresh requires --state-file")

    if cfg.graph is not None:
        graph_text = _read_text(cfg.graph, GraphLoadError)
    elif stored.get("graph"):
        graph_text = str(stored["graph"])
    else:
        raise ConfigError("A graph is required: pass --graph or a --state-file holding one")

    if cfg.plan is not None:
        plan_text: Optional[str] = _read_text(cfg.plan, PlanLoadError)
    elif cfg.graph is None:
        plan_text = _stored_plan_text(stored.get("plan"))
    else:
        plan_text = None

    excluded = cfg.exclude_categories or stored.get("excluded_categories") or []
    selected = cfg.tags or stored.get("selected_tags") or []
    filter_state = FilterState(excluded_categories=frozenset(excluded), selected_tags=frozenset(selected))
    for category in cfg.toggle_categories:
        filter_state = filter_state.toggle_category(category)
    for tag in cfg.toggle_tags:
        filter_state = filter_state.toggle_tag(tag)
    return PassInputs(
        graph_text=graph_text,
        plan_text=plan_text,
        detailed=cfg.detailed if cfg.detailed is not None else bool(stored.get("detailed")),
        show_inactive=cfg.show_inactive if cfg.show_inactive is not None else bool(stored.get("show_inactive")),
        filter_state=filter_state,
    )


def run_pass(cfg: RunConfig, inputs: PassInputs) -> Resolution:
    timers = StepTimers()
    log_event(LOG, logging.INFO, "Loading inputs", step="load", phase="start", timers=timers)
    graph = parse_dot(inputs.graph_text)
    plan = parse_plan(inputs.plan_text)
    table = load_mapping_table(cfg.mapping)
    log_event(
        LOG,
        logging.INFO,
        "Inputs loaded",
        step="load",
        phase="complete",
        timers=timers,
        nodes=len(graph.primary.nodes),
        edges=len(graph.primary.edges),
        resource_changes=len(plan) if plan is not None else None,
        mapping_rows=len(table),
    )
    options = GroupingOptions(
        detailed=inputs.detailed,
        hide_inactive=not inputs.show_inactive,
        resource_prefixes=tuple(cfg.resource_prefixes),
    )
    return resolve(graph, table, plan, options, inputs.filter_state)


def _persist(cfg: RunConfig, inputs: PassInputs, resolution: Resolution) -> None:
    if cfg.state_file is None:
        return
    plan_obj = json.loads(inputs.plan_text) if inputs.plan_text and inputs.plan_text.strip() else None
    StateStore(cfg.state_file).send(
        graph=inputs.graph_text,
        plan=plan_obj,
        groups=resolution_payload(resolution)["groups"],
        detailed=inputs.detailed,
        show_inactive=inputs.show_inactive,
        excluded_categories=sorted(inputs.filter_state.excluded_categories),
        selected_tags=sorted(inputs.filter_state.selected_tags),
    )


def _print_summary(resolution: Resolution, console: Console) -> None:
    table = Table(title="Resource groups")
    for col in ("Group", "Name", "Category", "Module", "State", "Members", "Out", "In"):
        table.add_column(col)
    for group in resolution.groups:
        table.add_row(
            group.id,
            group.name,
            group.category,
            group.module_name or "",
            group.state.value,
            str(len(group.members)),
            str(len(group.connections_out)),
            str(len(group.connections_in)),
        )
    console.print(table)
    counts = summarize_states([g.state.value for g in resolution.groups])
    if counts:
        console.print(", ".join(f"{state}={count}" for state, count in counts.items()))


def _render(cfg: RunConfig, inputs: PassInputs) -> int:
    add_run_log_file(cfg.outdir / RUN_LOG_PATH)
    resolution = run_pass(cfg, inputs)
    timers = StepTimers()
    log_event(LOG, logging.INFO, "Export started", step="export", phase="start", timers=timers)
    groups_path = write_groups(cfg.outdir, resolution)
    diagram_path = write_mermaid(cfg.outdir, resolution.groups, resolution.modules, has_plan=resolution.has_plan)
    _persist(cfg, inputs, resolution)
    log_event(
        LOG,
        logging.INFO,
        "Export complete",
        step="export",
        phase="complete",
        timers=timers,
        groups_path=str(groups_path),
        diagram_path=str(diagram_path),
    )
    _print_summary(resolution, Console())
    return 0


def cmd_render(cfg: RunConfig) -> int:
    return _render(cfg, _gather_inputs(cfg))


def cmd_refresh(cfg: RunConfig) -> int:
    return _render(cfg, _gather_inputs(cfg, require_state=True))


def cmd_categories(cfg: RunConfig) -> int:
    resolution = run_pass(cfg, _gather_inputs(cfg))
    for category in resolution.categories:
        print(category)
    return 0


def cmd_tags(cfg: RunConfig) -> int:
    resolution = run_pass(cfg, _gather_inputs(cfg))
    for name in resolution.filter_state.tag_names:
        print(name)
    return 0


def cmd_show(cfg: RunConfig) -> int:
    if not cfg.group:
        raise ConfigError("show requires --group")
    resolution = run_pass(cfg, _gather_inputs(cfg))
    group = resolution.group(cfg.group)
    if group is None:
        raise ConfigError(f"Unknown group: {cfg.group}")
    print(describe_changes(group.iter_changes(), show_unknown=cfg.show_unknown))
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))
        LOG.debug("Run configuration", extra={"command": command, "config": dump_config(cfg)})

        if command == "render":
            code = cmd_render(cfg)
        elif command == "refresh":
            code = cmd_refresh(cfg)
        elif command == "categories":
            code = cmd_categories(cfg)
        elif command == "tags":
            code = cmd_tags(cfg)
        elif command == "show":
            code = cmd_show(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head`; treat as a normal early exit.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
