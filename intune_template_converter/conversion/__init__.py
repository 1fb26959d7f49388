"""Conversion package — matching, payload building and orchestration."""

from .models import (
    CatalogDefinition,
    Confidence,
    ConversionOutcome,
    ConversionRequest,
    ConversionResult,
    ConversionStatus,
    LegacySetting,
    MatchResult,
    OutcomeStatus,
)
from .matcher import DefinitionMatcher
from .builder import build_catalog_setting, child_definition_id
from .orchestrator import PolicyConverter

__all__ = [
    "CatalogDefinition",
    "Confidence",
    "ConversionOutcome",
    "ConversionRequest",
    "ConversionResult",
    "ConversionStatus",
    "LegacySetting",
    "MatchResult",
    "OutcomeStatus",
    "DefinitionMatcher",
    "build_catalog_setting",
    "child_definition_id",
    "PolicyConverter",
]
