"""
Saved tenant connections for the converter.

An admin who converts policies in several tenants can save each app
registration once and pick it with ``--profile``. The store lives at
``~/.intune_template_converter/profiles.json`` and holds connection details
only: tenant id, client id, sign-in mode and certificate location.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger("intune_template_converter.profiles")

DEFAULT_PROFILES_FILE = Path.home() / ".intune_template_converter" / "profiles.json"
DEFAULT_CERT_PATH = "./base64.txt"


@dataclass
class TenantProfile:
    """App registration used to reach one tenant."""
    name: str
    tenant_id: str
    client_id: str
    auth_mode: str = "certificate"          # or "delegated" (device code)
    cert_path: str = DEFAULT_CERT_PATH      # base64-encoded PFX, certificate mode only
    tenant_display_name: str = ""           # shown in conversion reports

    def resolve_cert_path(self) -> str:
        """Certificate path made absolute against the current directory."""
        p = Path(self.cert_path).expanduser()
        if not p.is_absolute():
            p = Path.cwd() / p
        return str(p)

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "auth_mode": self.auth_mode,
            "cert_path": self.cert_path,
            "tenant_display_name": self.tenant_display_name,
        }

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "TenantProfile":
        return cls(
            name=name,
            tenant_id=data["tenant_id"],
            client_id=data["client_id"],
            auth_mode=data.get("auth_mode", "certificate"),
            cert_path=data.get("cert_path", DEFAULT_CERT_PATH),
            tenant_display_name=data.get("tenant_display_name", ""),
        )


@dataclass
class ProfileStore:
    """Profiles file plus the name of the profile used when none is given."""
    path: Path = DEFAULT_PROFILES_FILE
    profiles: dict[str, TenantProfile] = field(default_factory=dict)
    default_profile: str = ""

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ProfileStore":
        """Read the profiles file; a missing or corrupt file gives an empty store."""
        path = path or DEFAULT_PROFILES_FILE
        store = cls(path=path)
        if not path.exists():
            return store
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            store.default_profile = data.get("default_profile", "")
            for name, pdata in data.get("profiles", {}).items():
                store.profiles[name] = TenantProfile.from_dict(name, pdata)
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning(f"Ignoring unreadable profiles file {path}: {e}")
            return cls(path=path)
        return store

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "default_profile": self.default_profile,
            "profiles": {name: p.to_dict() for name, p in self.profiles.items()},
        }
        self.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

    def add(self, profile: TenantProfile, set_default: bool = False) -> None:
        """Save a profile, replacing one of the same name. The first profile becomes the default."""
        self.profiles[profile.name] = profile
        if set_default or not self.default_profile:
            self.default_profile = profile.name
        self.save()

    def remove(self, name: str) -> bool:
        if name not in self.profiles:
            return False
        del self.profiles[name]
        if self.default_profile == name:
            # next remaining profile, if any, takes over as default
            self.default_profile = next(iter(self.profiles), "")
        self.save()
        return True

    def get(self, name: str) -> Optional[TenantProfile]:
        """Profile by name, ignoring case."""
        wanted = name.lower()
        return next((p for n, p in self.profiles.items() if n.lower() == wanted), None)

    def get_default(self) -> Optional[TenantProfile]:
        if self.default_profile:
            return self.profiles.get(self.default_profile)
        return next(iter(self.profiles.values()), None)

    def set_default(self, name: str) -> bool:
        if name not in self.profiles:
            return False
        self.default_profile = name
        self.save()
        return True

    def list_profiles(self) -> list[TenantProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.name)


def resolve_profile(
    profile_name: Optional[str] = None,
    store: Optional[ProfileStore] = None,
) -> Optional[TenantProfile]:
    """Named profile, or the default one when no name is given."""
    store = store or ProfileStore.load()
    if profile_name:
        return store.get(profile_name)
    return store.get_default()
