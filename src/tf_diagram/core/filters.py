from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, List, Mapping, Tuple

from ..logging import get_logger
from .grouping import ResourceGroup

LOG = get_logger(__name__)


@dataclass(frozen=True)
class Tag:
    name: str
    value: str


@dataclass(frozen=True)
class FilterState:
    """
    Selections fed into a pass, and the categories/tags it observed.
    A pass returns a new FilterState; nothing is kept between passes.
    """

    excluded_categories: FrozenSet[str] = frozenset()
    selected_tags: FrozenSet[str] = frozenset()
    categories: Tuple[str, ...] = ()
    tags: Tuple[Tag, ...] = field(default_factory=tuple)

    @property
    def tag_names(self) -> List[str]:
        """Distinct tag names in first-seen order."""
        out: List[str] = []
        for tag in self.tags:
            if tag.name not in out:
                out.append(tag.name)
        return out

    def toggle_category(self, category: str) -> "FilterState":
        if category in self.excluded_categories:
            return replace(self, excluded_categories=self.excluded_categories - {category})
        return replace(self, excluded_categories=self.excluded_categories | {category})

    def toggle_tag(self, tag: str) -> "FilterState":
        if tag in self.selected_tags:
            return replace(self, selected_tags=self.selected_tags - {tag})
        return replace(self, selected_tags=self.selected_tags | {tag})


def collect_categories(groups: Iterable[ResourceGroup]) -> Tuple[str, ...]:
    return tuple(sorted({g.category for g in groups}))


def collect_tags(groups: Iterable[ResourceGroup]) -> Tuple[Tag, ...]:
    tags: List[Tag] = []
    for group in groups:
        for record in group.iter_changes():
            for key, value in record.tags_all.items():
                tags.append(Tag(name=str(key), value="" if value is None else str(value)))
    return tuple(tags)


def exclude_categories(groups: Mapping[str, ResourceGroup], excluded: FrozenSet[str]) -> Dict[str, ResourceGroup]:
    if not excluded:
        return dict(groups)
    return {gid: g for gid, g in groups.items() if g.category not in excluded}


def _has_selected_tag(group: ResourceGroup, selected: FrozenSet[str]) -> bool:
    return any(key in selected for record in group.iter_changes() for key in record.tags_all)


def include_tags(groups: Mapping[str, ResourceGroup], selected: FrozenSet[str]) -> Dict[str, ResourceGroup]:
    if not selected:
        return dict(groups)
    return {gid: g for gid, g in groups.items() if _has_selected_tag(g, selected)}


def apply_filters(
    groups: Mapping[str, ResourceGroup],
    state: FilterState,
) -> Tuple[Dict[str, ResourceGroup], FilterState]:
    categories = collect_categories(groups.values())
    kept = exclude_categories(groups, state.excluded_categories)
    tags = collect_tags(kept.values())
    kept = include_tags(kept, state.selected_tags)
    LOG.debug(
        "Filters applied",
        extra={"groups_in": len(groups), "groups_out": len(kept), "categories": len(categories), "tags": len(tags)},
    )
    return kept, replace(state, categories=categories, tags=tags)
