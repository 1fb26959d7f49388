"""
Definition Matcher — finds the Settings Catalog definition that best
corresponds to a legacy Administrative Template setting.

Candidates come from a display-name "contains" search against the catalog.
Only an exact (case-insensitive) name match is trusted as ``high``; every
other pick is a heuristic and labelled ``medium`` or ``low`` so the
administrator can judge it before relying on the converted policy.
"""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable, Optional

import httpx

from ..graph.client import GraphAPIError
from .models import CatalogDefinition, Confidence, LegacySetting, MatchResult

logger = logging.getLogger("intune_template_converter.conversion.matcher")

CatalogSearch = Callable[[str], Awaitable[list[CatalogDefinition]]]

SCOPE_PREFIXES = {"user": "user_", "device": "device_"}

_QUOTES = re.compile(r"['\"]")
_ADMX_SUFFIX = re.compile(r"\.admx$", re.IGNORECASE)


def _has_scope_prefix(definition: CatalogDefinition, prefix: str) -> bool:
    ids = (definition.id, definition.raw.get("settingDefinitionId") or "")
    return any(i.lower().startswith(prefix) for i in ids)


def clean_display_name(display_name: str) -> str:
    return _QUOTES.sub("", display_name)


def last_category(category_path: str) -> Optional[str]:
    """Final non-empty segment of a backslash-delimited category path."""
    parts = [p for p in category_path.split("\\") if p]
    return parts[-1] if parts else None


class DefinitionMatcher:
    """Matches legacy settings to catalog definitions via an injected search."""

    def __init__(self, search: CatalogSearch):
        self._search = search
        self.search_failures = 0

    async def match_setting(self, setting: LegacySetting) -> Optional[MatchResult]:
        return await self.match(
            setting.display_name,
            setting.category_path,
            setting.scope,
            setting.source_file_name,
        )

    async def match(
        self,
        display_name: str,
        category_path: str,
        scope: str,
        source_file_name: Optional[str] = None,
    ) -> Optional[MatchResult]:
        """
        Return the best catalog match for a legacy setting, or None.

        Order: exact name (high), scope-prefixed name correlation (medium),
        first scope-prefixed or first overall candidate (low); when the name
        search finds nothing, the last category segment and then the ADMX
        file name are searched and a candidate containing the name wins
        (medium).
        """
        name = clean_display_name(display_name)
        name_lower = name.lower()

        results = await self._safe_search(name)

        if results:
            for r in results:
                if r.display_name.lower() == name_lower:
                    return MatchResult(r, Confidence.HIGH)

            prefix = SCOPE_PREFIXES["user"] if scope == "user" else SCOPE_PREFIXES["device"]
            scoped = [r for r in results if _has_scope_prefix(r, prefix)]
            if scoped:
                for r in scoped:
                    candidate = r.display_name.lower()
                    if name_lower in candidate or candidate in name_lower:
                        return MatchResult(r, Confidence.MEDIUM)
                return MatchResult(scoped[0], Confidence.LOW)

            return MatchResult(results[0], Confidence.LOW)

        category = last_category(category_path)
        if category:
            found = self._containing(await self._safe_search(category), name_lower)
            if found:
                return MatchResult(found, Confidence.MEDIUM)

        if source_file_name:
            admx_name = _ADMX_SUFFIX.sub("", source_file_name).lower()
            found = self._containing(await self._safe_search(admx_name), name_lower)
            if found:
                return MatchResult(found, Confidence.MEDIUM)

        logger.debug(f"No catalog match for '{display_name}'")
        return None

    @staticmethod
    def _containing(
        results: list[CatalogDefinition], name_lower: str
    ) -> Optional[CatalogDefinition]:
        for r in results:
            if name_lower in r.display_name.lower():
                return r
        return None

    async def _safe_search(self, term: str) -> list[CatalogDefinition]:
        """Search the catalog; transport failures count as no results."""
        try:
            return await self._search(term)
        except (GraphAPIError, httpx.HTTPError) as e:
            self.search_failures += 1
            logger.warning(f"Settings catalog search failed for '{term}': {e}")
            return []
