from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..graph.model import DependencyGraph
from ..logging import get_logger
from ..mapping import MappingTable
from ..plan.model import PlanDocument
from ..util.events import StepTimers, log_event
from .connectivity import connect_groups
from .filters import FilterState, Tag, apply_filters
from .grouping import GroupingOptions, GroupingPass, ResourceGroup
from .modules import ModuleNode, module_hierarchy

LOG = get_logger(__name__)


@dataclass
class Resolution:
    groups: List[ResourceGroup] = field(default_factory=list)
    modules: List[ModuleNode] = field(default_factory=list)
    filter_state: FilterState = field(default_factory=FilterState)
    has_plan: bool = False

    @property
    def categories(self) -> List[str]:
        return list(self.filter_state.categories)

    @property
    def tags(self) -> List[Tag]:
        return list(self.filter_state.tags)

    def group(self, group_id: str) -> Optional[ResourceGroup]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groups": [g.to_dict() for g in self.groups],
            "modules": [m.to_dict() for m in self.modules],
            "categories": self.categories,
            "tags": [{"name": t.name, "value": t.value} for t in self.tags],
            "excludedCategories": sorted(self.filter_state.excluded_categories),
            "selectedTags": sorted(self.filter_state.selected_tags),
            "hasPlan": self.has_plan,
        }


def resolve(
    graph: DependencyGraph,
    table: MappingTable,
    plan: Optional[PlanDocument] = None,
    options: Optional[GroupingOptions] = None,
    filter_state: Optional[FilterState] = None,
) -> Resolution:
    """
    Run one full pass: seed -> expand -> prune -> filter -> connect -> modules.
    Each call owns its own claimed set and group map.
    """
    timers = StepTimers()
    options = options or GroupingOptions()
    filter_state = filter_state or FilterState()

    log_event(LOG, logging.DEBUG, "Grouping started", step="grouping", phase="start", timers=timers)
    groups = GroupingPass(graph, table, plan, options).run()
    log_event(
        LOG,
        logging.INFO,
        "Grouping complete",
        step="grouping",
        phase="complete",
        timers=timers,
        groups=len(groups),
        detailed=options.detailed,
        hide_inactive=options.hide_inactive,
        has_plan=plan is not None,
    )

    kept, observed = apply_filters(groups, filter_state)
    group_edges = connect_groups(kept, graph)
    modules = module_hierarchy(kept.values())
    log_event(
        LOG,
        logging.INFO,
        "Resolution complete",
        step="resolve",
        phase="complete",
        groups=len(kept),
        group_edges=group_edges,
        modules=len(modules),
        categories=len(observed.categories),
    )
    return Resolution(
        groups=list(kept.values()),
        modules=modules,
        filter_state=observed,
        has_plan=plan is not None,
    )
