"""
Payload Builder — turns a matched catalog definition plus the legacy
enabled flag and presentation values into a Settings Catalog
``deviceManagementConfigurationSetting`` payload.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Optional

from .models import (
    BooleanPresentationValue,
    CatalogDefinition,
    CatalogOption,
    DecimalPresentationValue,
    ListPresentationValue,
    MultiTextPresentationValue,
    PresentationValue,
    TextPresentationValue,
)

logger = logging.getLogger("intune_template_converter.conversion.builder")

_GRAPH = "#microsoft.graph.deviceManagementConfiguration"

SETTING_TYPE = f"{_GRAPH}Setting"
CHOICE_INSTANCE_TYPE = f"{_GRAPH}ChoiceSettingInstance"
CHOICE_VALUE_TYPE = f"{_GRAPH}ChoiceSettingValue"
SIMPLE_INSTANCE_TYPE = f"{_GRAPH}SimpleSettingInstance"
SIMPLE_COLLECTION_TYPE = f"{_GRAPH}SimpleSettingCollectionInstance"
STRING_VALUE_TYPE = f"{_GRAPH}StringSettingValue"
INTEGER_VALUE_TYPE = f"{_GRAPH}IntegerSettingValue"

_LABEL_UNSAFE = re.compile(r"[^a-z0-9_]")


def child_definition_id(definition_id: str, label: str) -> str:
    """Child setting id: parent id plus the label with unsafe chars replaced by '_'."""
    return f"{definition_id}_{_LABEL_UNSAFE.sub('_', label.lower())}"


def coerce_integer(value: Any) -> int:
    """Integer form of a decimal presentation value; anything non-numeric is 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        pass
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return 0


def _string_value(value: Any) -> dict:
    return {"@odata.type": STRING_VALUE_TYPE, "value": str(value)}


def _list_entry(entry: Any) -> str:
    if isinstance(entry, dict) and entry.get("name"):
        return str(entry["name"])
    return str(entry)


def build_child(definition_id: str, pv: PresentationValue) -> dict:
    """One child setting instance for a presentation value."""
    child_id = child_definition_id(definition_id, pv.label)

    if isinstance(pv, TextPresentationValue):
        return {
            "@odata.type": SIMPLE_INSTANCE_TYPE,
            "settingDefinitionId": child_id,
            "simpleSettingValue": _string_value(pv.value if pv.value is not None else ""),
        }
    if isinstance(pv, DecimalPresentationValue):
        return {
            "@odata.type": SIMPLE_INSTANCE_TYPE,
            "settingDefinitionId": child_id,
            "simpleSettingValue": {
                "@odata.type": INTEGER_VALUE_TYPE,
                "value": coerce_integer(pv.value),
            },
        }
    if isinstance(pv, BooleanPresentationValue):
        return {
            "@odata.type": CHOICE_INSTANCE_TYPE,
            "settingDefinitionId": child_id,
            "choiceSettingValue": {
                "@odata.type": CHOICE_VALUE_TYPE,
                "value": f"{child_id}_true" if pv.value else f"{child_id}_false",
            },
        }
    if isinstance(pv, ListPresentationValue):
        entries = [_list_entry(v) for v in pv.values]
    elif isinstance(pv, MultiTextPresentationValue):
        entries = [str(v) for v in pv.values]
    else:
        raise TypeError(f"Unsupported presentation value: {type(pv).__name__}")

    return {
        "@odata.type": SIMPLE_COLLECTION_TYPE,
        "settingDefinitionId": child_id,
        "simpleSettingCollectionValue": [_string_value(e) for e in entries],
    }


def _find_option(
    options: Iterable[CatalogOption], name: str, suffixes: tuple[str, ...]
) -> Optional[CatalogOption]:
    for option in options:
        if option.display_name.lower() == name or option.item_id.endswith(suffixes):
            return option
    return None


def select_enabled_value(definition: CatalogDefinition, enabled: bool) -> str:
    """
    Choice value for the root instance. Prefers the definition's own
    enabled/disabled option and falls back to ``{id}_1`` / ``{id}_0``.
    """
    if definition.options:
        if enabled:
            option = _find_option(definition.options, "enabled", ("_1", "_enabled"))
        else:
            option = _find_option(definition.options, "disabled", ("_0", "_disabled"))
        if option and option.item_id:
            return option.item_id
        logger.debug(
            f"No {'enabled' if enabled else 'disabled'} option on {definition.id}, "
            f"using fallback id"
        )
    return f"{definition.id}_1" if enabled else f"{definition.id}_0"


def build_catalog_setting(
    definition: CatalogDefinition,
    enabled: bool,
    presentation_values: Iterable[PresentationValue],
) -> dict:
    """Build the configuration-setting payload for one matched legacy setting."""
    children = [build_child(definition.id, pv) for pv in presentation_values]

    return {
        "@odata.type": SETTING_TYPE,
        "settingInstance": {
            "@odata.type": CHOICE_INSTANCE_TYPE,
            "settingDefinitionId": definition.id,
            "choiceSettingValue": {
                "@odata.type": CHOICE_VALUE_TYPE,
                "value": select_enabled_value(definition, enabled),
                "children": children,
            },
        },
    }


def build_policy_body(
    name: str,
    description: str,
    settings: list[dict],
    platforms: str = "windows10",
    technologies: str = "mdm",
) -> dict:
    """Body for POST /deviceManagement/configurationPolicies."""
    return {
        "name": name,
        "description": description,
        "platforms": platforms,
        "technologies": technologies,
        "settings": settings,
        "templateReference": {
            "templateId": "",
            "templateFamily": "none",
        },
    }
