"""
Intune Graph service — the device-management endpoints a conversion reads
and writes: Administrative Template policies, the Settings Catalog, role
scope tags, assignment filters and group names.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from ..config import ConversionConfig
from ..conversion.builder import build_policy_body
from ..conversion.models import CatalogDefinition
from .client import GraphAPIError, GraphClient

logger = logging.getLogger("intune_template_converter.graph.intune")

GROUP_POLICY_CONFIGURATIONS = "deviceManagement/groupPolicyConfigurations"
CONFIGURATION_POLICIES = "deviceManagement/configurationPolicies"
CONFIGURATION_SETTINGS = "deviceManagement/configurationSettings"


def _odata_quote(term: str) -> str:
    return term.replace("'", "''")


class IntuneService:
    """Typed wrappers around the Intune endpoints, all on Graph /beta."""

    def __init__(self, graph: GraphClient, config: Optional[ConversionConfig] = None):
        self.graph = graph
        self.config = config or ConversionConfig()

    # ─── Tenant ──────────────────────────────────────────────────────────

    async def get_tenant_info(self) -> dict:
        """Tenant id and display name; connection errors are reported, not raised."""
        try:
            data = await self.graph.get("organization", params={"$select": "id,displayName"})
        except (GraphAPIError, httpx.HTTPError) as e:
            return {"connected": False, "error": str(e)}
        org = (data.get("value") or [{}])[0]
        return {
            "connected": True,
            "tenant_id": org.get("id"),
            "display_name": org.get("displayName"),
        }

    # ─── Administrative Templates ────────────────────────────────────────

    async def list_admin_template_policies(self) -> list[dict]:
        """All Administrative Template policies with a settings_count each."""
        policies = await self.graph.get_all_pages(GROUP_POLICY_CONFIGURATIONS, beta=True)

        async def with_count(policy: dict) -> dict:
            try:
                values = await self.graph.get_all_pages(
                    f"{GROUP_POLICY_CONFIGURATIONS}/{policy['id']}/definitionValues",
                    beta=True,
                )
                count = len(values)
            except (GraphAPIError, httpx.HTTPError) as e:
                logger.warning(f"Could not count settings of policy {policy.get('id')}: {e}")
                count = 0
            return {**policy, "settings_count": count}

        return list(await asyncio.gather(*(with_count(p) for p in policies)))

    async def get_admin_template_policy(self, policy_id: str) -> dict:
        return await self.graph.get(f"{GROUP_POLICY_CONFIGURATIONS}/{policy_id}", beta=True)

    async def get_policy_settings(self, policy_id: str) -> list[dict]:
        """
        Definition values of a policy, each with its definition (plus
        definition file) and presentation values expanded. Values are fetched
        concurrently; a value whose details cannot be read comes back with
        ``definition`` set to None.
        """
        base = f"{GROUP_POLICY_CONFIGURATIONS}/{policy_id}/definitionValues"
        definition_values = await self.graph.get_all_pages(base, beta=True)

        async def with_details(def_value: dict) -> dict:
            value_url = f"{base}/{def_value.get('id')}"
            try:
                definition, presentation_values = await asyncio.gather(
                    self.graph.get(f"{value_url}/definition", beta=True),
                    self.graph.get_all_pages(
                        f"{value_url}/presentationValues",
                        params={"$expand": "presentation"},
                        beta=True,
                    ),
                )
            except (GraphAPIError, httpx.HTTPError) as e:
                logger.warning(
                    f"Failed to get details for definition value {def_value.get('id')}: {e}"
                )
                return {**def_value, "definition": None, "presentationValues": []}

            if not definition:
                logger.warning(f"Empty definition returned for definition value {def_value.get('id')}")
                return {**def_value, "definition": None, "presentationValues": []}

            definition_file = None
            definition_id = definition.get("id")
            if definition_id:
                try:
                    definition_file = await self.graph.get(
                        f"deviceManagement/groupPolicyDefinitions/{definition_id}/definitionFile",
                        beta=True,
                    )
                except (GraphAPIError, httpx.HTTPError):
                    logger.debug(f"Could not fetch definition file for {definition_id}")

            return {
                **def_value,
                "definition": {**definition, "definitionFile": definition_file},
                "presentationValues": presentation_values,
            }

        return list(await asyncio.gather(*(with_details(v) for v in definition_values)))

    async def get_policy_assignments(self, policy_id: str) -> list[dict]:
        return await self.graph.get_all_pages(
            f"{GROUP_POLICY_CONFIGURATIONS}/{policy_id}/assignments", beta=True
        )

    # ─── Settings Catalog ────────────────────────────────────────────────

    async def search_settings_catalog(self, term: str) -> list[CatalogDefinition]:
        """Catalog definitions whose display name contains the term."""
        data = await self.graph.get(
            CONFIGURATION_SETTINGS,
            params={
                "$filter": f"contains(displayName,'{_odata_quote(term)}')",
                "$top": str(self.config.search_top),
            },
            beta=True,
        )
        return [CatalogDefinition.from_graph(d) for d in data.get("value", [])]

    async def get_setting_definition(self, definition_id: str) -> Optional[CatalogDefinition]:
        try:
            data = await self.graph.get(
                f"{CONFIGURATION_SETTINGS}('{_odata_quote(definition_id)}')", beta=True
            )
        except (GraphAPIError, httpx.HTTPError) as e:
            logger.warning(f"Failed to get definition details for {definition_id}: {e}")
            return None
        return CatalogDefinition.from_graph(data)

    async def create_settings_catalog_policy(
        self, name: str, description: str, settings: list[dict]
    ) -> dict:
        body = build_policy_body(
            name,
            description,
            settings,
            platforms=self.config.platforms,
            technologies=self.config.technologies,
        )
        return await self.graph.post(CONFIGURATION_POLICIES, body, beta=True)

    async def assign_settings_catalog_policy(self, policy_id: str, assignments: list[dict]) -> None:
        await self.graph.post(
            f"{CONFIGURATION_POLICIES}/{policy_id}/assign",
            {"assignments": assignments},
            beta=True,
        )

    async def update_settings_catalog_scope_tags(
        self, policy_id: str, role_scope_tag_ids: list[str]
    ) -> None:
        await self.graph.patch(
            f"{CONFIGURATION_POLICIES}/{policy_id}",
            {"roleScopeTagIds": role_scope_tag_ids},
            beta=True,
        )

    # ─── Lookups ─────────────────────────────────────────────────────────

    async def get_role_scope_tags(self) -> list[dict]:
        return await self.graph.get_all_pages(
            "deviceManagement/roleScopeTags",
            params={"$select": "id,displayName,description,isBuiltIn"},
            beta=True,
        )

    async def list_assignment_filters(self) -> list[dict]:
        return await self.graph.get_all_pages(
            "deviceManagement/assignmentFilters",
            params={"$select": "id,displayName,description,platform,rule"},
            beta=True,
        )

    async def resolve_group_names(self, group_ids: list[str]) -> dict[str, str]:
        """Group id → display name; unresolvable ids map to themselves."""
        names: dict[str, str] = {}

        async def resolve(group_id: str):
            try:
                group = await self.graph.get(
                    f"groups/{group_id}", params={"$select": "id,displayName"}
                )
                names[group_id] = group.get("displayName") or group_id
            except (GraphAPIError, httpx.HTTPError):
                names[group_id] = group_id

        await asyncio.gather(*(resolve(g) for g in dict.fromkeys(group_ids)))
        return names

    async def resolve_filter_names(self, filter_ids: list[str]) -> dict[str, dict]:
        """Filter id → {displayName, platform, rule}; unresolvable ids map to themselves."""
        filters: dict[str, dict] = {}

        async def resolve(filter_id: str):
            try:
                f = await self.graph.get(
                    f"deviceManagement/assignmentFilters/{filter_id}",
                    params={"$select": "id,displayName,platform,rule"},
                    beta=True,
                )
                filters[filter_id] = {
                    "displayName": f.get("displayName") or filter_id,
                    "platform": f.get("platform") or "",
                    "rule": f.get("rule") or "",
                }
            except (GraphAPIError, httpx.HTTPError):
                filters[filter_id] = {"displayName": filter_id, "platform": "", "rule": ""}

        await asyncio.gather(*(resolve(f) for f in dict.fromkeys(filter_ids)))
        return filters
