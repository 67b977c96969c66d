from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Union

from ..logging import get_logger
from .model import ChangeRecord, ChangeState, PlanDocument
from .values import as_display_text, resolve_attribute

LOG = get_logger(__name__)


def records_for_address(plan: Optional[PlanDocument], address: str) -> List[ChangeRecord]:
    """Change records for an address, including indexed (count/for_each) instances."""
    if plan is None or not address:
        return []
    indexed_prefix = address + "["
    return [r for r in plan.resource_changes if r.address == address or r.address.startswith(indexed_prefix)]


def to_state(tag: Union[str, ChangeState]) -> ChangeState:
    if isinstance(tag, ChangeState):
        return tag
    try:
        return ChangeState(tag)
    except ValueError:
        LOG.warning("Unrecognised plan action; treating as update", extra={"action": tag})
        return ChangeState.UPDATE


def fold_state(current: Union[str, ChangeState], tag: Union[str, ChangeState]) -> ChangeState:
    """
    Combine two change states:
      - equal states stay as they are
      - no-op/read are overridden by any other state
      - two different low states give read
      - two different non-low states give update
    """
    left = to_state(current)
    right = to_state(tag)
    if left is right:
        return left
    if left.is_low and right.is_low:
        return ChangeState.READ
    if left.is_low:
        return right
    if right.is_low:
        return left
    return ChangeState.UPDATE


def fold_states(states: Iterable[Union[str, ChangeState]], initial: ChangeState = ChangeState.NO_OP) -> ChangeState:
    result = initial
    for state in states:
        result = fold_state(result, state)
    return result


def resolve_state(records: Sequence[ChangeRecord]) -> ChangeState:
    return fold_states(r.action_tag for r in records)


def resolve_display_name(
    records: Sequence[ChangeRecord],
    attribute_path: str,
    fallback: Optional[str],
) -> str:
    if records:
        after = records[0].after
        if isinstance(after, dict):
            for candidate in (after.get(attribute_path), after.get("name")):
                text = as_display_text(candidate)
                if text:
                    return text
            if "." in attribute_path:
                text = as_display_text(resolve_attribute(after, attribute_path))
                if text:
                    return text
    return fallback or ""
