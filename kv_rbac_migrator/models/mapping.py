"""Mapping row model for principal-to-principal migration input."""

import re
from dataclasses import dataclass
from typing import Any, Optional, Pattern, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .principal import PrincipalRef

TRUTHY_VALUES = frozenset({"true", "1", "yes"})


def parse_truthy(value: Optional[str]) -> Optional[bool]:
    """
    Parse an optional CSV flag.

    Blank or missing values stay unset (None) so the global default applies.
    ``true``, ``1`` and ``yes`` (any case) are True; any other text is False.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text.lower() in TRUTHY_VALUES


class MappingRow(BaseModel):
    """One row of the mapping CSV, parsed once and immutable afterwards.

    Attributes:
        row_number: 1-based data row number in the source file (header excluded)
        old_principal: Identity string whose assignments are replicated
        new_principal: Identity string that receives the replicated assignments
        subscription_filter: Subscription id or display name to restrict to
        vault_name_pattern: Regex searched (case-insensitive) in vault names;
            compiled lazily so an invalid pattern only skips its own row
        tag_name: Tag key a vault must carry (only used together with tag_value)
        tag_value: Tag value a vault must carry (only used together with tag_name)
        include_inherited: Per-row override; None means "use the global flag"
    """

    model_config = ConfigDict(frozen=True)

    row_number: int = 0
    old_principal: str = ""
    new_principal: str = ""
    subscription_filter: Optional[str] = None
    vault_name_pattern: Optional[str] = None
    tag_name: Optional[str] = None
    tag_value: Optional[str] = None
    include_inherited: Optional[bool] = Field(default=None)

    @model_validator(mode="before")
    @classmethod
    def normalize_blanks(cls, data: Any) -> Any:
        """Strip string values and turn blank optional values into None."""
        if isinstance(data, dict):
            cleaned = dict(data)
            for key in ("old_principal", "new_principal"):
                value = cleaned.get(key)
                cleaned[key] = value.strip() if isinstance(value, str) else ""
            for key in (
                "subscription_filter",
                "vault_name_pattern",
                "tag_name",
                "tag_value",
            ):
                value = cleaned.get(key)
                if isinstance(value, str):
                    value = value.strip()
                cleaned[key] = value or None
            return cleaned
        return data

    @property
    def compiled_pattern(self) -> Optional[Pattern[str]]:
        """
        Compiled vault name pattern, or None when unset.

        Raises:
            re.error: If the pattern is not a valid regular expression
        """
        if self.vault_name_pattern is None:
            return None
        return re.compile(self.vault_name_pattern, re.IGNORECASE)

    @property
    def tag_filter(self) -> Optional[Tuple[str, str]]:
        """(name, value) tag filter, only when both parts are set."""
        if self.tag_name and self.tag_value:
            return (self.tag_name, self.tag_value)
        return None

    def has_blank_principal(self) -> bool:
        """True if either principal column is blank."""
        return not self.old_principal or not self.new_principal

    def effective_include_inherited(self, default: bool) -> bool:
        """Row override if set, otherwise the global default."""
        if self.include_inherited is None:
            return default
        return self.include_inherited


@dataclass(frozen=True)
class ResolvedMapping:
    """A mapping row paired with both resolved principals."""

    row: MappingRow
    old: PrincipalRef
    new: PrincipalRef
