"""Loads the principal mapping CSV into typed MappingRow records."""

import csv
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import ValidationError

from ..exceptions import MappingInputError
from ..models.mapping import MappingRow, parse_truthy

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("OldPrincipal", "NewPrincipal")
OPTIONAL_COLUMNS = (
    "Subscription",
    "VaultNamePattern",
    "TagName",
    "TagValue",
    "IncludeInherited",
)

# CSV column -> MappingRow field
_COLUMN_FIELDS = {
    "OldPrincipal": "old_principal",
    "NewPrincipal": "new_principal",
    "Subscription": "subscription_filter",
    "VaultNamePattern": "vault_name_pattern",
    "TagName": "tag_name",
    "TagValue": "tag_value",
}


def _resolve_header(fieldnames: List[str]) -> Dict[str, str]:
    """Map canonical column names to the header names actually used in the file."""
    by_lower = {name.strip().lower(): name for name in fieldnames if name}
    resolved = {}
    for column in REQUIRED_COLUMNS + OPTIONAL_COLUMNS:
        actual = by_lower.get(column.lower())
        if actual is not None:
            resolved[column] = actual
    return resolved


def load_mapping(path: Union[str, Path]) -> List[MappingRow]:
    """
    Parse the mapping CSV.

    Args:
        path: Path to a CSV with a header row

    Returns:
        One MappingRow per data row, in file order

    Raises:
        MappingInputError: If the file is missing, has no header, lacks a
            required column, or has no data rows
    """
    csv_path = Path(path)
    if not csv_path.is_file():
        raise MappingInputError("Mapping CSV not found", path=str(csv_path))

    with open(csv_path, newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or []
        if not fieldnames:
            raise MappingInputError("Mapping CSV has no header row", path=str(csv_path))

        header = _resolve_header(list(fieldnames))
        missing = [c for c in REQUIRED_COLUMNS if c not in header]
        if missing:
            raise MappingInputError(
                f"Mapping CSV is missing required columns: {', '.join(missing)}",
                path=str(csv_path),
            )

        rows = []
        for index, raw in enumerate(reader, start=1):
            rows.append(_parse_row(raw, header, index, csv_path))

    if not rows:
        raise MappingInputError("Mapping CSV has no data rows", path=str(csv_path))

    logger.info(f"Loaded {len(rows)} mapping rows from {csv_path}")
    return rows


def _parse_row(
    raw: Dict[str, Optional[str]],
    header: Dict[str, str],
    row_number: int,
    csv_path: Path,
) -> MappingRow:
    data: Dict[str, object] = {"row_number": row_number}
    for column, field_name in _COLUMN_FIELDS.items():
        actual = header.get(column)
        data[field_name] = raw.get(actual) if actual else None

    inherited_column = header.get("IncludeInherited")
    data["include_inherited"] = (
        parse_truthy(raw.get(inherited_column)) if inherited_column else None
    )

    try:
        return MappingRow(**data)
    except ValidationError as e:
        raise MappingInputError(
            f"Invalid mapping row: {e.errors()[0].get('msg', e)}",
            path=str(csv_path),
            row_number=row_number,
            cause=e,
        ) from e
