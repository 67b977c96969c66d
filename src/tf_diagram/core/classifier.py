from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from ..logging import get_logger

LOG = get_logger(__name__)

DEFAULT_RESOURCE_PREFIXES: Tuple[str, ...] = ("aws_",)


class BlockKind(str, Enum):
    RESOURCE = "resource"
    DATA = "data"
    VARIABLE = "variable"
    LOCAL = "local"
    OUTPUT = "output"
    PROVIDER = "provider"
    MODULE = "module"
    UNKNOWN = "unknown"


_PREFIX_KINDS: Tuple[Tuple[str, BlockKind], ...] = (
    ("data.", BlockKind.DATA),
    ("var.", BlockKind.VARIABLE),
    ("local.", BlockKind.LOCAL),
    ("output.", BlockKind.OUTPUT),
    ("provider[", BlockKind.PROVIDER),
)


@dataclass(frozen=True)
class BlockClassification:
    kind: BlockKind
    address: str
    module_path: str = ""
    resource_type: Optional[str] = None
    resource_name: Optional[str] = None

    @property
    def is_resource_with_name(self) -> bool:
        return self.kind is BlockKind.RESOURCE and bool(self.resource_type) and bool(self.resource_name)

    @property
    def is_data_with_name(self) -> bool:
        return self.kind is BlockKind.DATA and bool(self.resource_type) and bool(self.resource_name)

    @property
    def module_names(self) -> Tuple[str, ...]:
        return tuple(self.module_path.split(".")) if self.module_path else ()


def block_reference(node_id: str) -> str:
    parts = node_id.split(" ")
    return parts[1] if len(parts) > 1 else ""


def _split_modules(reference: str) -> Tuple[str, str]:
    modules = []
    residual = reference
    while residual.startswith("module."):
        segments = residual.split(".")
        modules.append(segments[1])
        residual = ".".join(segments[2:])
    return ".".join(m for m in modules if m), residual


def resource_type_and_name(
    address: str,
    prefixes: Sequence[str] = DEFAULT_RESOURCE_PREFIXES,
) -> Tuple[Optional[str], Optional[str]]:
    """
    Return the first segment that looks like a resource type and the segment after it.
    Index suffixes such as ``[0]`` are kept as part of the name.
    """
    segments = address.split(".")
    for i, segment in enumerate(segments):
        if segment.startswith(tuple(prefixes)):
            name = segments[i + 1] if i + 1 < len(segments) else None
            return segment, (name or None)
    return None, None


def classify_reference(
    reference: str,
    prefixes: Sequence[str] = DEFAULT_RESOURCE_PREFIXES,
) -> BlockClassification:
    module_path, residual = _split_modules(reference)
    if not residual:
        if module_path:
            return BlockClassification(kind=BlockKind.MODULE, address=reference, module_path=module_path)
        LOG.debug("Empty block reference", extra={"reference": reference})
        return BlockClassification(kind=BlockKind.UNKNOWN, address=reference)

    kind = BlockKind.UNKNOWN
    for prefix, prefix_kind in _PREFIX_KINDS:
        if residual.startswith(prefix):
            kind = prefix_kind
            break
    else:
        if residual.startswith(tuple(prefixes)):
            kind = BlockKind.RESOURCE

    if kind is BlockKind.UNKNOWN:
        LOG.warning("Unknown block type", extra={"reference": reference})
        return BlockClassification(kind=kind, address=residual, module_path=module_path)

    resource_type: Optional[str] = None
    resource_name: Optional[str] = None
    if kind in (BlockKind.RESOURCE, BlockKind.DATA):
        resource_type, resource_name = resource_type_and_name(residual, prefixes)
    return BlockClassification(
        kind=kind,
        address=residual,
        module_path=module_path,
        resource_type=resource_type,
        resource_name=resource_name,
    )


def classify_block(
    node_id: str,
    prefixes: Sequence[str] = DEFAULT_RESOURCE_PREFIXES,
) -> BlockClassification:
    """Classify a raw graph node id of the form ``"<internal-id> <block-reference>"``."""
    return classify_reference(block_reference(node_id), prefixes)


def type_label(resource_type: str) -> str:
    """``aws_lb_target_group`` -> ``Lb Target Group``."""
    parts = [p for p in resource_type.split("_")[1:] if p]
    return " ".join(p[:1].upper() + p[1:] for p in parts)
