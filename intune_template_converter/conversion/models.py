"""
Conversion data models — legacy settings, catalog definitions and results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

logger = logging.getLogger("intune_template_converter.conversion.models")

ODATA_TYPE = "@odata.type"


class MalformedSettingError(Exception):
    """Raised when a definition value has no retrievable definition."""
    pass


# ─── Presentation values ────────────────────────────────────────────────────

@dataclass(frozen=True)
class TextPresentationValue:
    label: str
    value: Optional[str] = None


@dataclass(frozen=True)
class DecimalPresentationValue:
    label: str
    value: Any = None


@dataclass(frozen=True)
class BooleanPresentationValue:
    label: str
    value: bool = False


@dataclass(frozen=True)
class ListPresentationValue:
    label: str
    values: tuple = ()


@dataclass(frozen=True)
class MultiTextPresentationValue:
    label: str
    values: tuple = ()


PresentationValue = Union[
    TextPresentationValue,
    DecimalPresentationValue,
    BooleanPresentationValue,
    ListPresentationValue,
    MultiTextPresentationValue,
]


def _as_tuple(values: Any) -> tuple:
    return tuple(values) if isinstance(values, list) else ()


def parse_presentation_value(raw: dict) -> Optional[PresentationValue]:
    """
    Turn a Graph groupPolicyPresentationValue into its typed variant.
    Returns None for kinds with no Settings Catalog counterpart.
    """
    odata_type = raw.get(ODATA_TYPE) or ""
    presentation = raw.get("presentation") or {}
    label = presentation.get("label") or "value"

    # MultiText before Text: the latter is a substring of the former
    if "MultiText" in odata_type:
        return MultiTextPresentationValue(label, _as_tuple(raw.get("values")))
    if "Text" in odata_type:
        return TextPresentationValue(label, raw.get("value"))
    if "Decimal" in odata_type:
        return DecimalPresentationValue(label, raw.get("value"))
    if "Boolean" in odata_type:
        return BooleanPresentationValue(label, bool(raw.get("value")))
    if "List" in odata_type:
        return ListPresentationValue(label, _as_tuple(raw.get("values")))

    logger.debug(f"Ignoring presentation value of type {odata_type or 'unknown'}")
    return None


# ─── Legacy settings ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LegacySetting:
    """One configured setting of an Administrative Template policy."""
    display_name: str
    category_path: str
    scope: str                              # "user" or "device"
    enabled: bool
    presentation_values: tuple = ()
    source_file_name: Optional[str] = None
    definition_value_id: str = ""

    @classmethod
    def from_definition_value(cls, raw: dict) -> "LegacySetting":
        """Build from a definition value with its definition and presentation values expanded."""
        definition = raw.get("definition")
        if not definition:
            raise MalformedSettingError("Could not retrieve setting definition")

        values = []
        for pv in raw.get("presentationValues") or []:
            parsed = parse_presentation_value(pv)
            if parsed is not None:
                values.append(parsed)

        definition_file = definition.get("definitionFile") or {}
        return cls(
            display_name=definition.get("displayName") or "",
            category_path=definition.get("categoryPath") or "",
            scope="user" if definition.get("classType") == "user" else "device",
            enabled=bool(raw.get("enabled")),
            presentation_values=tuple(values),
            source_file_name=definition_file.get("fileName"),
            definition_value_id=raw.get("id", ""),
        )


# ─── Settings Catalog ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class CatalogOption:
    item_id: str
    display_name: str = ""

    @classmethod
    def from_graph(cls, raw: dict) -> "CatalogOption":
        return cls(
            item_id=raw.get("itemId") or raw.get("value") or raw.get("name") or "",
            display_name=raw.get("displayName") or raw.get("name") or "",
        )


@dataclass(frozen=True)
class CatalogDefinition:
    """A Settings Catalog setting definition returned by a catalog search."""
    id: str
    display_name: str = ""
    options: tuple = ()
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_graph(cls, raw: dict) -> "CatalogDefinition":
        options = raw.get("options") or raw.get("choiceSettingOptions") or []
        return cls(
            id=raw.get("id") or raw.get("settingDefinitionId") or "",
            display_name=raw.get("displayName") or "",
            options=tuple(CatalogOption.from_graph(o) for o in options),
            raw=raw,
        )


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class MatchResult:
    definition: CatalogDefinition
    confidence: Confidence


# ─── Conversion results ─────────────────────────────────────────────────────

class OutcomeStatus(str, Enum):
    CONVERTED = "converted"
    NOT_FOUND = "not_found"
    ERROR = "error"


class ConversionStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class ConversionOutcome:
    """Per-setting record of what happened during a conversion."""
    setting_name: str
    category_path: str
    status: OutcomeStatus
    mapped_definition_id: Optional[str] = None
    confidence: Optional[Confidence] = None
    original_value: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "setting_name": self.setting_name,
            "category_path": self.category_path,
            "status": self.status.value,
        }
        if self.mapped_definition_id is not None:
            data["mapped_definition_id"] = self.mapped_definition_id
        if self.confidence is not None:
            data["confidence"] = self.confidence.value
        if self.original_value is not None:
            data["original_value"] = self.original_value
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ConversionResult:
    """Aggregate result of converting one policy."""
    policy_name: str
    status: ConversionStatus
    total_settings: int = 0
    converted_settings: int = 0
    failed_settings: int = 0
    details: list[ConversionOutcome] = field(default_factory=list)
    new_policy_id: Optional[str] = None
    error: Optional[str] = None
    dry_run: bool = False
    assignments_copied: int = 0
    scope_tags_copied: list[str] = field(default_factory=list)

    @property
    def confidence_breakdown(self) -> dict[str, int]:
        counts = {c.value: 0 for c in Confidence}
        for d in self.details:
            if d.confidence is not None:
                counts[d.confidence.value] += 1
        return counts

    def to_dict(self) -> dict:
        return {
            "policy_name": self.policy_name,
            "status": self.status.value,
            "new_policy_id": self.new_policy_id,
            "dry_run": self.dry_run,
            "total_settings": self.total_settings,
            "converted_settings": self.converted_settings,
            "failed_settings": self.failed_settings,
            "confidence_breakdown": self.confidence_breakdown,
            "assignments_copied": self.assignments_copied,
            "scope_tags_copied": self.scope_tags_copied,
            "error": self.error,
            "details": [d.to_dict() for d in self.details],
        }


@dataclass
class ConversionRequest:
    """Parameters of one conversion run."""
    policy_id: str
    new_name: str
    new_description: str = ""
    include_assignments: bool = False
    copy_scope_tags: bool = False
    dry_run: bool = False

    def __post_init__(self):
        if not self.policy_id or not self.policy_id.strip():
            raise ValueError("Source policy id is required")
        if not self.new_name or not self.new_name.strip():
            raise ValueError("Policy name is required")


# ─── Assignments ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AssignmentFilter:
    filter_id: str
    filter_type: Optional[str] = None


@dataclass(frozen=True)
class IncludedGroupTarget:
    group_id: str
    assignment_filter: Optional[AssignmentFilter] = None


@dataclass(frozen=True)
class ExcludedGroupTarget:
    group_id: str
    assignment_filter: Optional[AssignmentFilter] = None


@dataclass(frozen=True)
class AllDevicesTarget:
    assignment_filter: Optional[AssignmentFilter] = None


@dataclass(frozen=True)
class AllUsersTarget:
    assignment_filter: Optional[AssignmentFilter] = None


@dataclass(frozen=True)
class UnknownTarget:
    odata_type: str
    raw: dict = field(default_factory=dict, compare=False)
    assignment_filter: Optional[AssignmentFilter] = None


AssignmentTarget = Union[
    IncludedGroupTarget,
    ExcludedGroupTarget,
    AllDevicesTarget,
    AllUsersTarget,
    UnknownTarget,
]


@dataclass(frozen=True)
class PolicyAssignment:
    id: str
    target: AssignmentTarget


@dataclass
class ResolvedAssignment:
    """Human-readable view of an assignment."""
    id: str
    target_type: str
    target_name: str
    group_id: Optional[str] = None
    filter_type: Optional[str] = None
    filter_id: Optional[str] = None
    filter_display_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "target_type": self.target_type,
            "target_name": self.target_name,
            "group_id": self.group_id,
            "filter_type": self.filter_type,
            "filter_id": self.filter_id,
            "filter_display_name": self.filter_display_name,
        }
