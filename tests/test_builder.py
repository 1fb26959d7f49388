from __future__ import annotations

import pytest

from intune_template_converter.conversion.builder import (
    CHOICE_INSTANCE_TYPE,
    INTEGER_VALUE_TYPE,
    SETTING_TYPE,
    SIMPLE_COLLECTION_TYPE,
    SIMPLE_INSTANCE_TYPE,
    STRING_VALUE_TYPE,
    build_catalog_setting,
    build_child,
    build_policy_body,
    child_definition_id,
    coerce_integer,
    select_enabled_value,
)
from intune_template_converter.conversion.models import (
    BooleanPresentationValue,
    DecimalPresentationValue,
    ListPresentationValue,
    MultiTextPresentationValue,
    TextPresentationValue,
)
from tests.helpers import catalog

DEF_ID = "device_vendor_msft_policy_config_edge_homepage"


def test_child_definition_id_sanitizes_label() -> None:
    assert child_definition_id("device_x", "Home page URL:") == "device_x_home_page_url_"
    assert child_definition_id("device_x", "Max_Size (MB)") == "device_x_max_size__mb_"


def test_child_definition_id_is_deterministic() -> None:
    assert child_definition_id(DEF_ID, "Proxy Server") == child_definition_id(DEF_ID, "Proxy Server")


def test_root_instance_is_bound_to_matched_definition() -> None:
    definition = catalog(DEF_ID, "Configure the home page URL")

    setting = build_catalog_setting(definition, True, [])

    assert setting["@odata.type"] == SETTING_TYPE
    instance = setting["settingInstance"]
    assert instance["@odata.type"] == CHOICE_INSTANCE_TYPE
    assert instance["settingDefinitionId"] == DEF_ID
    assert instance["choiceSettingValue"]["children"] == []


def test_enabled_value_falls_back_without_options() -> None:
    definition = catalog(DEF_ID, "Home page")

    assert select_enabled_value(definition, True) == f"{DEF_ID}_1"
    assert select_enabled_value(definition, False) == f"{DEF_ID}_0"


def test_enabled_value_prefers_named_options() -> None:
    definition = catalog(DEF_ID, "Home page", options=[
        {"itemId": f"{DEF_ID}_off", "displayName": "Disabled"},
        {"itemId": f"{DEF_ID}_on", "displayName": "Enabled"},
    ])

    assert select_enabled_value(definition, True) == f"{DEF_ID}_on"
    assert select_enabled_value(definition, False) == f"{DEF_ID}_off"


def test_enabled_value_matches_option_id_suffixes() -> None:
    definition = catalog(DEF_ID, "Home page", options=[
        {"itemId": "opt_enabled", "displayName": "Turn it on"},
        {"itemId": "opt_disabled", "displayName": "Turn it off"},
    ])

    assert select_enabled_value(definition, True) == "opt_enabled"
    assert select_enabled_value(definition, False) == "opt_disabled"


def test_enabled_value_falls_back_when_options_do_not_fit() -> None:
    definition = catalog(DEF_ID, "Level", options=[
        {"itemId": "level_low", "displayName": "Low"},
        {"itemId": "level_high", "displayName": "High"},
    ])

    assert select_enabled_value(definition, True) == f"{DEF_ID}_1"


def test_choice_setting_options_are_read_as_options() -> None:
    from intune_template_converter.conversion.models import CatalogDefinition

    definition = CatalogDefinition.from_graph({
        "id": DEF_ID,
        "choiceSettingOptions": [{"value": f"{DEF_ID}_1", "name": "Enabled"}],
    })

    assert select_enabled_value(definition, True) == f"{DEF_ID}_1"


def test_text_child() -> None:
    child = build_child(DEF_ID, TextPresentationValue("Home page", "https://contoso.com"))

    assert child == {
        "@odata.type": SIMPLE_INSTANCE_TYPE,
        "settingDefinitionId": f"{DEF_ID}_home_page",
        "simpleSettingValue": {"@odata.type": STRING_VALUE_TYPE, "value": "https://contoso.com"},
    }


def test_text_child_with_missing_value_is_empty_string() -> None:
    child = build_child(DEF_ID, TextPresentationValue("Home page", None))

    assert child["simpleSettingValue"]["value"] == ""


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(30, 30), ("45", 45), ("12.9", 12), ("", 0), ("abc", 0), (None, 0)],
)
def test_coerce_integer(raw, expected) -> None:
    assert coerce_integer(raw) == expected


def test_decimal_child_is_integer_value() -> None:
    child = build_child(DEF_ID, DecimalPresentationValue("Cache size", "512"))

    assert child["@odata.type"] == SIMPLE_INSTANCE_TYPE
    assert child["simpleSettingValue"] == {"@odata.type": INTEGER_VALUE_TYPE, "value": 512}


def test_boolean_children_encode_true_and_false_differently() -> None:
    definition = catalog(DEF_ID, "Home page")
    on = build_catalog_setting(definition, True, [BooleanPresentationValue("Lock it", True)])
    off = build_catalog_setting(definition, False, [BooleanPresentationValue("Lock it", False)])

    on_child = on["settingInstance"]["choiceSettingValue"]["children"][0]
    off_child = off["settingInstance"]["choiceSettingValue"]["children"][0]
    assert on_child["@odata.type"] == CHOICE_INSTANCE_TYPE
    assert on_child["choiceSettingValue"]["value"] == f"{DEF_ID}_lock_it_true"
    assert off_child["choiceSettingValue"]["value"] == f"{DEF_ID}_lock_it_false"


def test_list_child_unwraps_name_entries() -> None:
    child = build_child(DEF_ID, ListPresentationValue("Sites", ({"name": "a"}, {"name": "b"})))

    assert child["@odata.type"] == SIMPLE_COLLECTION_TYPE
    assert [v["value"] for v in child["simpleSettingCollectionValue"]] == ["a", "b"]
    assert all(v["@odata.type"] == STRING_VALUE_TYPE for v in child["simpleSettingCollectionValue"])


def test_multi_text_child_is_collection_of_strings() -> None:
    child = build_child(DEF_ID, MultiTextPresentationValue("Hosts", ("one", "two", "three")))

    assert child["@odata.type"] == SIMPLE_COLLECTION_TYPE
    assert [v["value"] for v in child["simpleSettingCollectionValue"]] == ["one", "two", "three"]


def test_one_child_per_presentation_value_in_order() -> None:
    definition = catalog(DEF_ID, "Proxy")
    values = [
        TextPresentationValue("Server", "proxy:8080"),
        DecimalPresentationValue("Port", 8080),
        MultiTextPresentationValue("Bypass", ("localhost",)),
    ]

    setting = build_catalog_setting(definition, True, values)

    children = setting["settingInstance"]["choiceSettingValue"]["children"]
    assert [c["settingDefinitionId"] for c in children] == [
        f"{DEF_ID}_server",
        f"{DEF_ID}_port",
        f"{DEF_ID}_bypass",
    ]


def test_policy_body_shape() -> None:
    body = build_policy_body("New policy", "desc", [{"x": 1}])

    assert body == {
        "name": "New policy",
        "description": "desc",
        "platforms": "windows10",
        "technologies": "mdm",
        "settings": [{"x": 1}],
        "templateReference": {"templateId": "", "templateFamily": "none"},
    }
