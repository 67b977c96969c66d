from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..logging import get_logger
from ..util.errors import MappingTableError

LOG = get_logger(__name__)

DEFAULT_TABLE_RESOURCE = "terraform_resources.csv"
DEFAULT_NAME_ATTRIBUTE = "name"

COL_MAIN = "Main Diagram Blocks"
COL_SATELLITES = "Missing Resources"
COL_DATA_SOURCES = "Data Sources"
COL_SERVICE = "Service Name"
COL_ICON = "Icon Path"
COL_CATEGORY = "Simplified Category"
COL_NAME_ARGS = "Arguments For Name"
REQUIRED_COLUMNS = (COL_MAIN, COL_SATELLITES, COL_DATA_SOURCES, COL_SERVICE, COL_ICON, COL_CATEGORY)


def _split_multi(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(","))


@dataclass(frozen=True)
class MappingRow:
    main_types: Tuple[str, ...]
    satellite_types: Tuple[str, ...]
    data_source_types: Tuple[str, ...]
    category: str
    service_name: str
    icon_path: str
    name_attributes: Tuple[str, ...] = ()

    def name_attribute(self, resource_type: str) -> str:
        """Attribute path used for the display name; aligned with main_types by position."""
        if resource_type not in self.main_types:
            return DEFAULT_NAME_ATTRIBUTE
        index = self.main_types.index(resource_type)
        if index < len(self.name_attributes):
            attr = self.name_attributes[index]
            if attr and attr != "-":
                return attr
        return DEFAULT_NAME_ATTRIBUTE


class MappingTable:
    """
    Static lookup from resource types to grouping rows.
    Main types are unique across rows; satellite and data source types may repeat.
    Rows may list satellites only; such rows are reached through row_for_any alone.
    """

    def __init__(self, rows: Iterable[MappingRow]) -> None:
        self._rows: List[MappingRow] = []
        self._by_main: Dict[str, MappingRow] = {}
        for row in rows:
            for main_type in row.main_types:
                if not main_type:
                    continue
                if main_type in self._by_main:
                    raise MappingTableError(f"Resource type '{main_type}' is listed as a main block in more than one row")
                self._by_main[main_type] = row
            self._rows.append(row)

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def rows(self) -> Tuple[MappingRow, ...]:
        return tuple(self._rows)

    def main_row(self, resource_type: Optional[str]) -> Optional[MappingRow]:
        if not resource_type:
            return None
        return self._by_main.get(resource_type)

    def absorbs(self, main_type: str, candidate_type: Optional[str], *, is_data: bool) -> bool:
        row = self.main_row(main_type)
        if row is None or not candidate_type:
            return False
        if is_data:
            return candidate_type in row.data_source_types
        return candidate_type in row.satellite_types

    def row_for_any(self, resource_type: Optional[str]) -> Optional[MappingRow]:
        """First row, in table order, listing the type as a main block or a satellite."""
        if not resource_type:
            return None
        main = self.main_row(resource_type)
        if main is not None:
            return main
        for row in self._rows:
            if resource_type in row.satellite_types:
                return row
        return None

    def name_attribute(self, resource_type: Optional[str]) -> str:
        row = self.main_row(resource_type)
        if row is None or not resource_type:
            return DEFAULT_NAME_ATTRIBUTE
        return row.name_attribute(resource_type)


def _row_from_csv(raw: Mapping[str, Optional[str]]) -> MappingRow:
    return MappingRow(
        main_types=tuple(t for t in _split_multi(raw.get(COL_MAIN)) if t),
        satellite_types=tuple(t for t in _split_multi(raw.get(COL_SATELLITES)) if t),
        data_source_types=tuple(t for t in _split_multi(raw.get(COL_DATA_SOURCES)) if t),
        category=(raw.get(COL_CATEGORY) or "").strip(),
        service_name=(raw.get(COL_SERVICE) or "").strip(),
        icon_path=(raw.get(COL_ICON) or "").strip(),
        # keep empty entries so positions stay aligned with main types
        name_attributes=_split_multi(raw.get(COL_NAME_ARGS)),
    )


def parse_mapping_csv(text: str) -> MappingTable:
    reader = csv.DictReader(io.StringIO(text))
    fields = [f.strip() for f in (reader.fieldnames or [])]
    if not fields:
        return MappingTable([])
    reader.fieldnames = fields
    missing = [col for col in REQUIRED_COLUMNS if col not in fields]
    if missing:
        raise MappingTableError(f"Mapping table is missing columns: {', '.join(missing)}")
    rows = [_row_from_csv(raw) for raw in reader]
    # satellite-only rows never seed a group but still place orphans in detailed mode
    table = MappingTable(r for r in rows if r.main_types or r.satellite_types)
    LOG.debug("Loaded mapping table", extra={"rows": len(table)})
    return table


def load_mapping_table(path: Optional[Path] = None) -> MappingTable:
    """
    Load the mapping table from a CSV path, or the packaged default when path is None.
    """
    if path is None:
        path = Path(__file__).resolve().parent / DEFAULT_TABLE_RESOURCE
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise MappingTableError(f"Failed to read mapping table {path}: {e}") from e
    return parse_mapping_csv(text)
