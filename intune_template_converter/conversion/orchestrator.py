"""
Conversion Orchestrator — converts one Administrative Template policy into a
new Settings Catalog policy.

Settings are matched and built one at a time in source order; a failure on
one setting is recorded as its outcome and processing moves on. Only the
final policy-creation call can fail the whole run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import httpx

from ..graph.client import GraphAPIError
from ..safety.guardian import SafetyViolation
from .assignments import DEFAULT_SCOPE_TAG, assignments_for_copy, parse_assignment, scope_tags_for_copy
from .builder import build_catalog_setting
from .matcher import DefinitionMatcher
from .models import (
    ConversionOutcome,
    ConversionRequest,
    ConversionResult,
    ConversionStatus,
    LegacySetting,
    MalformedSettingError,
    OutcomeStatus,
)

if TYPE_CHECKING:
    from ..config import ConversionConfig
    from ..graph.intune import IntuneService

logger = logging.getLogger("intune_template_converter.conversion")

NO_SETTINGS_MESSAGE = "No settings found in the source policy."
NO_MATCHES_MESSAGE = (
    "No settings could be mapped to Settings Catalog definitions. "
    "The settings may need to be mapped manually in the Intune portal."
)
UNMATCHED_MESSAGE = "No matching Settings Catalog definition found"

TRANSPORT_ERRORS = (GraphAPIError, httpx.HTTPError, SafetyViolation)


class PolicyConverter:
    """Runs the fetch → match → build → create sequence for one policy."""

    def __init__(
        self,
        intune: "IntuneService",
        matcher: Optional[DefinitionMatcher] = None,
        config: Optional["ConversionConfig"] = None,
    ):
        self.intune = intune
        self.matcher = matcher or DefinitionMatcher(intune.search_settings_catalog)
        self.config = config or intune.config

    async def convert(self, request: ConversionRequest) -> ConversionResult:
        logger.info(f"Starting conversion for policy {request.policy_id}")
        try:
            raw_settings = await self.intune.get_policy_settings(request.policy_id)
        except TRANSPORT_ERRORS as e:
            logger.error(f"Failed to read settings of policy {request.policy_id}: {e}")
            return ConversionResult(
                policy_name=request.new_name,
                status=ConversionStatus.FAILED,
                error=f"Could not read the source policy: {e}",
                dry_run=request.dry_run,
            )

        if not raw_settings:
            return ConversionResult(
                policy_name=request.new_name,
                status=ConversionStatus.FAILED,
                error=NO_SETTINGS_MESSAGE,
                dry_run=request.dry_run,
            )

        outcomes: list[ConversionOutcome] = []
        catalog_settings: list[dict] = []
        for raw in raw_settings:
            outcome, payload = await self._convert_setting(raw)
            outcomes.append(outcome)
            if payload is not None:
                catalog_settings.append(payload)

        total = len(raw_settings)
        converted = sum(1 for o in outcomes if o.status is OutcomeStatus.CONVERTED)
        failed = total - converted

        result = ConversionResult(
            policy_name=request.new_name,
            status=ConversionStatus.SUCCESS if failed == 0 else ConversionStatus.PARTIAL,
            total_settings=total,
            converted_settings=converted,
            failed_settings=failed,
            details=outcomes,
            dry_run=request.dry_run,
        )

        if not catalog_settings:
            result.status = ConversionStatus.FAILED
            result.error = NO_MATCHES_MESSAGE
            return result

        if request.dry_run:
            logger.info(
                f"Dry run: {converted}/{total} settings would be converted, nothing created"
            )
            return result

        description = request.new_description or self.config.default_description
        try:
            new_policy = await self.intune.create_settings_catalog_policy(
                request.new_name, description, catalog_settings
            )
        except TRANSPORT_ERRORS as e:
            logger.error(f"Failed to create Settings Catalog policy: {e}")
            result.status = ConversionStatus.FAILED
            result.error = f"Policy creation failed: {e}"
            return result

        result.new_policy_id = new_policy.get("id")
        logger.info(f"Created Settings Catalog policy: {result.new_policy_id}")

        if result.new_policy_id:
            if request.include_assignments:
                result.assignments_copied = await self._copy_assignments(
                    request.policy_id, result.new_policy_id
                )
            if request.copy_scope_tags:
                result.scope_tags_copied = await self._copy_scope_tags(
                    request.policy_id, result.new_policy_id
                )

        return result

    async def _convert_setting(
        self, raw: dict
    ) -> tuple[ConversionOutcome, Optional[dict]]:
        """Outcome for one definition value, plus its catalog payload when matched."""
        try:
            setting = LegacySetting.from_definition_value(raw)
        except MalformedSettingError as e:
            return ConversionOutcome(
                setting_name="Unknown Setting",
                category_path="Unknown",
                status=OutcomeStatus.ERROR,
                error=str(e),
            ), None

        category = setting.category_path or "Unknown"
        try:
            match = await self.matcher.match_setting(setting)
            if match is None:
                return ConversionOutcome(
                    setting_name=setting.display_name,
                    category_path=category,
                    status=OutcomeStatus.NOT_FOUND,
                    error=UNMATCHED_MESSAGE,
                ), None

            payload = build_catalog_setting(
                match.definition, setting.enabled, setting.presentation_values
            )
        except Exception as e:
            logger.exception(f"Failed to convert setting '{setting.display_name}'")
            return ConversionOutcome(
                setting_name=setting.display_name,
                category_path=category,
                status=OutcomeStatus.ERROR,
                error=str(e),
            ), None

        logger.debug(
            f"'{setting.display_name}' -> {match.definition.id} ({match.confidence.value})"
        )
        return ConversionOutcome(
            setting_name=setting.display_name,
            category_path=category,
            status=OutcomeStatus.CONVERTED,
            mapped_definition_id=match.definition.id,
            confidence=match.confidence,
            original_value="Enabled" if setting.enabled else "Disabled",
        ), payload

    async def _copy_assignments(self, source_id: str, target_id: str) -> int:
        """Relay the source policy's assignments; failures are logged only."""
        try:
            raw = await self.intune.get_policy_assignments(source_id)
            if not raw:
                return 0
            body = assignments_for_copy(parse_assignment(a) for a in raw)
            await self.intune.assign_settings_catalog_policy(target_id, body)
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Failed to copy assignments: {e}")
            return 0
        logger.info(f"Copied {len(body)} assignments to new policy")
        return len(body)

    async def _copy_scope_tags(self, source_id: str, target_id: str) -> list[str]:
        """Copy role scope tags; a policy with only the default tag needs no update."""
        try:
            source = await self.intune.get_admin_template_policy(source_id)
            tags = scope_tags_for_copy(source)
            if tags == [DEFAULT_SCOPE_TAG]:
                return []
            await self.intune.update_settings_catalog_scope_tags(target_id, tags)
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Failed to copy scope tags: {e}")
            return []
        logger.info(f"Copied scope tags {tags} to new policy")
        return tags
