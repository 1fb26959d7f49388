"""
Safety Guardian — Restricts tenant writes to the Settings Catalog operations
a conversion needs. Source Administrative Template policies are never modified.
"""

from __future__ import annotations

import logging
import re
import sys
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("intune_template_converter.safety")

# ─── Write Allow-List ────────────────────────────────────────────────────────

READ_METHODS = {"GET", "HEAD", "OPTIONS"}

# (method, pattern) pairs a conversion is allowed to issue
ALLOWED_WRITES = [
    ("POST", re.compile(r"/deviceManagement/configurationPolicies/?$")),
    ("POST", re.compile(r"/deviceManagement/configurationPolicies/[^/]+/assign$")),
    ("PATCH", re.compile(r"/deviceManagement/configurationPolicies/[^/]+$")),
]

# Never written, whatever the method
PROTECTED_URL_PATTERNS = [
    re.compile(r"/deviceManagement/groupPolicyConfigurations", re.IGNORECASE),
    re.compile(r"/deviceManagement/groupPolicyDefinitions", re.IGNORECASE),
    re.compile(r"/deviceManagement/roleScopeTags", re.IGNORECASE),
    re.compile(r"/groups", re.IGNORECASE),
]


class SafetyViolation(Exception):
    """Raised when a request falls outside the allowed write surface."""
    pass


def _path_of(url: str) -> str:
    return url.split("?", 1)[0]


class SafetyGuardian:
    """
    Validates every outbound HTTP request before it is sent.
    In dry-run mode all writes are refused. Keeps an audit log of
    writes performed and violations detected.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self.violations: list[dict] = []
        self.writes: list[dict] = []
        self.checks_performed: int = 0
        self.started_at: str = _utc_now()

    def validate_request(self, method: str, url: str, body: Optional[dict] = None) -> bool:
        """
        Validate a request.
        Returns True if allowed, raises SafetyViolation if not.
        """
        self.checks_performed += 1
        method_upper = method.upper()
        path = _path_of(url)

        if method_upper in READ_METHODS:
            return True

        if self.dry_run:
            self._record_violation(method_upper, url, "Write blocked in dry-run mode")
            raise SafetyViolation(f"Dry run: write blocked: {method_upper} {url}")

        for pattern in PROTECTED_URL_PATTERNS:
            if pattern.search(path):
                self._record_violation(method_upper, url, "Protected resource")
                raise SafetyViolation(
                    f"SAFETY VIOLATION: Protected resource: {method_upper} {url}"
                )

        for allowed_method, pattern in ALLOWED_WRITES:
            if method_upper == allowed_method and pattern.search(path):
                self.writes.append({
                    "timestamp": _utc_now(),
                    "method": method_upper,
                    "url": url,
                })
                return True

        self._record_violation(method_upper, url, "Write outside the conversion surface")
        raise SafetyViolation(
            f"SAFETY VIOLATION: Write not allowed: {method_upper} {url}"
        )

    def _record_violation(self, method: str, url: str, reason: str):
        """Record a safety violation for audit."""
        self.violations.append({
            "timestamp": _utc_now(),
            "method": method,
            "url": url,
            "reason": reason,
        })
        if self.dry_run:
            logger.info(f"{reason}: {method} {url}")
        else:
            logger.critical(f"SAFETY VIOLATION: {reason} — {method} {url}")

    def get_audit_record(self) -> dict:
        """Return the full safety audit record."""
        return {
            "safety_guardian": {
                "mode": "DRY-RUN" if self.dry_run else "CATALOG-WRITE",
                "started_at": self.started_at,
                "checks_performed": self.checks_performed,
                "writes_performed": self.writes,
                "violations_detected": len(self.violations),
                "violations": self.violations,
                "status": "CLEAN" if not self.violations else "VIOLATIONS_DETECTED",
            }
        }

    def print_banner(self):
        """Print the write-scope banner."""
        if self.dry_run:
            lines = [
                "DRY RUN — NO CHANGES WILL BE MADE",
                "* Settings are matched and payloads built, nothing is created",
            ]
        else:
            lines = [
                "CONVERSION MODE — A NEW SETTINGS CATALOG POLICY WILL BE CREATED",
                "* The source Administrative Template policy is never modified",
                "* Writes are limited to the new policy, its assignments and scope tags",
            ]

        enc = getattr(sys.stdout, "encoding", "") or ""
        rule = "═" if enc.lower().replace("-", "") in ("utf8", "utf16", "utf32") else "="
        try:
            print(rule * 75)
            for line in lines:
                print(f"  {line}")
            print(rule * 75)
        except UnicodeEncodeError:
            print("=" * 75)
            for line in lines:
                print(f"  {line.encode('ascii', 'replace').decode('ascii')}")
            print("=" * 75)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
