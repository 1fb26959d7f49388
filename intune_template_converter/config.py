"""
Configuration module for the Intune Administrative Template converter.
Defines authentication settings, Graph API tunables and conversion defaults.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Optional


# ─── Tenant Authentication ───────────────────────────────────────────────────

CERT_PASSWORD_ENV = "INTUNE_CONVERTER_CERT_PASSWORD"

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Falls back to env var, then prompt

@dataclass
class DelegatedAuth:
    """Delegated (device code) authentication configuration."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: [
        "https://graph.microsoft.com/DeviceManagementConfiguration.ReadWrite.All",
        "https://graph.microsoft.com/DeviceManagementRBAC.Read.All",
        "https://graph.microsoft.com/Group.Read.All",
        "https://graph.microsoft.com/Organization.Read.All",
    ])

@dataclass
class AuthConfig:
    """Authentication configuration — supports both modes."""
    mode: str = "certificate"  # "certificate" or "delegated"
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None


# ─── Graph API Settings ─────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"
GRAPH_BETA_VERSION = "beta"

# Rate limiting / throttling
MAX_CONCURRENT_REQUESTS = 4       # Parallel requests to Graph
MAX_RETRIES = 5                   # Retry count for throttled requests
INITIAL_BACKOFF_SECONDS = 2.0     # First retry delay
MAX_BACKOFF_SECONDS = 120.0       # Cap on exponential backoff
BACKOFF_MULTIPLIER = 2.0          # Exponential factor

# Pagination
MAX_PAGES_PER_ENDPOINT = 1000     # Safety cap on pagination loops

# Token refresh happens this many seconds before expiry
TOKEN_REFRESH_MARGIN_SECONDS = 300


# ─── Conversion Settings ────────────────────────────────────────────────────

@dataclass
class ConversionConfig:
    """Controls for Settings Catalog lookup and policy creation."""
    search_top: int = 50                  # Max catalog candidates per search
    platforms: str = "windows10"
    technologies: str = "mdm"
    default_description: str = "Converted from Administrative Template"
    include_assignments: bool = False     # Copy group assignments by default
    copy_scope_tags: bool = False         # Copy role scope tags by default


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class ConverterConfig:
    """Top-level configuration for the converter."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    conversion: ConversionConfig = field(default_factory=ConversionConfig)
    output_dir: str = "./conversion_reports"
    formats: list[str] = field(default_factory=lambda: ["json", "markdown"])
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str) -> "ConverterConfig":
        """Load configuration from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        config = cls()
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "certificate")
            if "certificate" in auth_data:
                c = auth_data["certificate"]
                config.auth.certificate = CertificateAuth(
                    tenant_id=c["tenant_id"],
                    client_id=c["client_id"],
                    certificate_path=c.get("certificate_path", "./base64.txt"),
                    certificate_password=c.get("certificate_password", ""),
                )
            if "delegated" in auth_data:
                d = auth_data["delegated"]
                config.auth.delegated = DelegatedAuth(
                    tenant_id=d["tenant_id"],
                    client_id=d["client_id"],
                )
                if d.get("scopes"):
                    config.auth.delegated.scopes = list(d["scopes"])
        if "conversion" in data:
            for k, v in data["conversion"].items():
                if hasattr(config.conversion, k):
                    setattr(config.conversion, k, v)
        config.output_dir = data.get("output_dir", config.output_dir)
        config.formats = data.get("formats", config.formats)
        config.verbose = data.get("verbose", False)
        return config


# ─── Required Graph API Permissions ─────────────────────────────────────────

REQUIRED_PERMISSIONS = {
    "DeviceManagementConfiguration.ReadWrite.All":
        "Read Administrative Template policies, search the Settings Catalog, "
        "create and assign Settings Catalog policies",
    "DeviceManagementRBAC.Read.All": "Read role scope tags",
    "Group.Read.All": "Resolve assignment group names",
    "Organization.Read.All": "Read tenant display name",
}
