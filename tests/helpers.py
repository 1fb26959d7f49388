from __future__ import annotations

from typing import Any, Optional

from intune_template_converter.config import ConversionConfig
from intune_template_converter.conversion.models import CatalogDefinition
from intune_template_converter.graph.client import GraphAPIError


def catalog(id: str, display_name: str, options: Optional[list[dict]] = None) -> CatalogDefinition:
    raw: dict[str, Any] = {"id": id, "displayName": display_name}
    if options is not None:
        raw["options"] = options
    return CatalogDefinition.from_graph(raw)


class FakeCatalogSearch:
    """Catalog search returning canned results per term and recording calls."""

    def __init__(self, results: Optional[dict[str, list[CatalogDefinition]]] = None,
                 failing: tuple[str, ...] = ()):
        self.results = results or {}
        self.failing = failing
        self.calls: list[str] = []

    async def __call__(self, term: str) -> list[CatalogDefinition]:
        self.calls.append(term)
        if term in self.failing:
            raise GraphAPIError(500, "search exploded", f"https://graph/search?{term}")
        return list(self.results.get(term, []))


def definition_value(
    display_name: Optional[str],
    category_path: str = "Windows Components\\Telemetry",
    enabled: bool = True,
    class_type: str = "machine",
    presentation_values: Optional[list[dict]] = None,
    file_name: Optional[str] = None,
    value_id: str = "dv-1",
) -> dict:
    """Graph definition value with definition and presentation values expanded."""
    if display_name is None:
        return {"id": value_id, "enabled": enabled, "definition": None, "presentationValues": []}
    return {
        "id": value_id,
        "enabled": enabled,
        "definition": {
            "id": f"def-{value_id}",
            "displayName": display_name,
            "categoryPath": category_path,
            "classType": class_type,
            "definitionFile": {"fileName": file_name} if file_name else None,
        },
        "presentationValues": presentation_values or [],
    }


def presentation(kind: str, label: str, **fields: Any) -> dict:
    return {
        "@odata.type": f"#microsoft.graph.groupPolicyPresentationValue{kind}",
        "presentation": {"label": label},
        **fields,
    }


class FakeIntune:
    """In-memory stand-in for IntuneService."""

    def __init__(
        self,
        settings: list[dict],
        catalog_results: Optional[dict[str, list[CatalogDefinition]]] = None,
        assignments: Optional[list[dict]] = None,
        source_policy: Optional[dict] = None,
        fail_create: bool = False,
        fail_assign: bool = False,
    ):
        self.config = ConversionConfig()
        self.settings = settings
        self.search = FakeCatalogSearch(catalog_results)
        self.assignments = assignments or []
        self.source_policy = source_policy or {"id": "src", "roleScopeTagIds": ["0"]}
        self.fail_create = fail_create
        self.fail_assign = fail_assign
        self.created: list[dict] = []
        self.assigned: list[tuple[str, list[dict]]] = []
        self.scope_tag_updates: list[tuple[str, list[str]]] = []

    async def get_policy_settings(self, policy_id: str) -> list[dict]:
        return self.settings

    async def search_settings_catalog(self, term: str) -> list[CatalogDefinition]:
        return await self.search(term)

    async def create_settings_catalog_policy(self, name, description, settings) -> dict:
        if self.fail_create:
            raise GraphAPIError(400, "Invalid setting definition", "configurationPolicies")
        self.created.append({"name": name, "description": description, "settings": settings})
        return {"id": "new-policy-id"}

    async def get_policy_assignments(self, policy_id: str) -> list[dict]:
        return self.assignments

    async def assign_settings_catalog_policy(self, policy_id, assignments) -> None:
        if self.fail_assign:
            raise GraphAPIError(403, "Forbidden", "assign")
        self.assigned.append((policy_id, assignments))

    async def get_admin_template_policy(self, policy_id: str) -> dict:
        return self.source_policy

    async def update_settings_catalog_scope_tags(self, policy_id, tags) -> None:
        self.scope_tag_updates.append((policy_id, tags))
