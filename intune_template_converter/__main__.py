"""
Intune Administrative Template Converter — command line entry point.

Usage:
    python -m intune_template_converter policies
    python -m intune_template_converter settings <policy-id>
    python -m intune_template_converter assignments <policy-id>
    python -m intune_template_converter convert <policy-id> --name "Edge baseline (catalog)"
    python -m intune_template_converter convert <policy-id> --name ... --dry-run
    python -m intune_template_converter search "Allow Telemetry"
    python -m intune_template_converter permissions

Tenant selection (any command):
    --profile contoso-prod | --config config.json | --tenant-id X --client-id Y
    --delegated            device-code sign-in instead of certificate auth
    --access-token TOKEN   use a pre-acquired bearer token

Profile management:
    python -m intune_template_converter profile add <name> --tenant-id ... --client-id ...
    python -m intune_template_converter profile list
    python -m intune_template_converter profile remove <name>
    python -m intune_template_converter profile set-default <name>

The source Administrative Template policy is never modified.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx

from . import __version__
from .auth.authenticator import AuthenticationError, Authenticator
from .auth.token_cache import AccessTokenCache, StaticTokenSource
from .config import CertificateAuth, ConverterConfig, DelegatedAuth
from .conversion import ConversionRequest, ConversionResult, ConversionStatus, PolicyConverter
from .conversion.assignments import filter_ids, group_ids, parse_assignment, resolve_assignments
from .graph.client import GraphAPIError, GraphClient
from .graph.intune import IntuneService
from .profiles import ProfileStore, TenantProfile, resolve_profile
from .reporting import export_json, export_markdown
from .safety.guardian import SafetyGuardian

ACCESS_TOKEN_ENV = "INTUNE_CONVERTER_ACCESS_TOKEN"

logger = logging.getLogger("intune_template_converter.cli")


class CLIError(Exception):
    """Configuration problem reported to the user without a traceback."""
    pass


# ---------------------------------------------------------------------------
# Profile management sub-commands
# ---------------------------------------------------------------------------

def _cmd_profile(args: argparse.Namespace) -> int:
    """Handle `profile add|list|remove|set-default` sub-commands."""
    store = ProfileStore.load()
    action = args.profile_action

    if action == "list":
        profiles = store.list_profiles()
        if not profiles:
            print("No profiles configured. Add one with:\n")
            print("  python -m intune_template_converter profile add <name> \\")
            print("    --tenant-id <GUID> --client-id <GUID> --cert-path ./base64.txt")
            return 0
        print(f"\n  {'Name':<24s} {'Tenant ID':<38s} {'Client ID':<38s} {'Auth':<12s} {'Default'}")
        print(f"  {'─'*24} {'─'*38} {'─'*38} {'─'*12} {'─'*7}")
        for p in profiles:
            marker = "  ✓" if p.name == store.default_profile else ""
            name_col = p.name + (f" ({p.tenant_display_name})" if p.tenant_display_name else "")
            print(f"  {name_col:<24s} {p.tenant_id:<38s} {p.client_id:<38s} {p.auth_mode:<12s}{marker}")
        print()
        return 0

    if action == "add":
        if store.get(args.profile_name):
            print(f"  Profile '{args.profile_name}' already exists. It will be overwritten.")
        profile = TenantProfile(
            name=args.profile_name,
            tenant_id=args.tenant_id,
            client_id=args.client_id,
            auth_mode="delegated" if args.delegated else "certificate",
            cert_path=args.cert_path or "./base64.txt",
            tenant_display_name=args.display_name or "",
        )
        set_as_default = args.set_default or not store.profiles
        store.add(profile, set_default=set_as_default)
        print(f"  ✅ Profile '{profile.name}' saved.")
        if set_as_default:
            print("  ✅ Set as default profile.")
        return 0

    if action == "remove":
        if store.remove(args.profile_name):
            print(f"  ✅ Profile '{args.profile_name}' removed.")
            return 0
        print(f"  ❌ Profile '{args.profile_name}' not found.")
        return 1

    if action == "set-default":
        if store.set_default(args.profile_name):
            print(f"  ✅ Default profile set to '{args.profile_name}'.")
            return 0
        print(f"  ❌ Profile '{args.profile_name}' not found.")
        return 1

    print("Usage: python -m intune_template_converter profile {add|list|remove|set-default}")
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="intune_template_converter",
        description="Convert Intune Administrative Template policies to Settings Catalog policies",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--profile", "-p", default=None, help="Tenant profile name")
    parser.add_argument("--config", "-c", type=Path, help="Path to JSON configuration file")
    parser.add_argument("--delegated", action="store_true",
                        help="Use delegated (device-code) authentication instead of certificate")
    parser.add_argument("--cert-path", type=Path, help="Base64-encoded PFX (overrides profile)")
    parser.add_argument("--tenant-id", default=None, help="Tenant ID (overrides profile)")
    parser.add_argument("--client-id", default=None, help="Client ID (overrides profile)")
    parser.add_argument("--access-token", default=os.environ.get(ACCESS_TOKEN_ENV),
                        help=f"Pre-acquired Graph bearer token (or set {ACCESS_TOKEN_ENV})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # --- profile management ---
    prof_parser = subparsers.add_parser("profile", help="Manage tenant profiles")
    prof_sub = prof_parser.add_subparsers(dest="profile_action", help="Profile actions")

    add_p = prof_sub.add_parser("add", help="Add or update a tenant profile")
    add_p.add_argument("profile_name", help="Short name for the profile (e.g. 'contoso-prod')")
    add_p.add_argument("--tenant-id", required=True, help="Entra tenant ID (GUID)")
    add_p.add_argument("--client-id", required=True, help="App registration client ID (GUID)")
    add_p.add_argument("--cert-path", default="./base64.txt", help="Path to base64-encoded PFX")
    add_p.add_argument("--delegated", action="store_true", help="Profile signs in with device code")
    add_p.add_argument("--display-name", help="Friendly tenant display name for reports")
    add_p.add_argument("--set-default", action="store_true", help="Set as default profile")

    prof_sub.add_parser("list", help="List all configured profiles")

    rm_p = prof_sub.add_parser("remove", help="Remove a profile")
    rm_p.add_argument("profile_name")

    sd_p = prof_sub.add_parser("set-default", help="Set the default profile")
    sd_p.add_argument("profile_name")

    # --- tenant inspection ---
    subparsers.add_parser("tenant", help="Show the connected tenant")
    subparsers.add_parser("policies", help="List Administrative Template policies")

    settings_p = subparsers.add_parser("settings", help="List the settings of a policy")
    settings_p.add_argument("policy_id")

    assign_p = subparsers.add_parser("assignments", help="List the assignments of a policy")
    assign_p.add_argument("policy_id")

    search_p = subparsers.add_parser("search", help="Search Settings Catalog definitions")
    search_p.add_argument("term")

    def_p = subparsers.add_parser("definition", help="Show a Settings Catalog definition")
    def_p.add_argument("definition_id")

    subparsers.add_parser("scope-tags", help="List role scope tags")
    subparsers.add_parser("filters", help="List assignment filters")
    subparsers.add_parser("permissions", help="Show the Graph permissions the app registration needs")

    # --- conversion ---
    conv_p = subparsers.add_parser("convert", help="Convert a policy to Settings Catalog")
    conv_p.add_argument("policy_id", help="Administrative Template policy ID")
    conv_p.add_argument("--name", "-n", required=True, help="Name of the new policy")
    conv_p.add_argument("--description", "-d", default="", help="Description of the new policy")
    conv_p.add_argument("--include-assignments", action="store_true", default=None,
                        help="Copy group assignments to the new policy")
    conv_p.add_argument("--copy-scope-tags", action="store_true", default=None,
                        help="Copy role scope tags to the new policy")
    conv_p.add_argument("--dry-run", action="store_true",
                        help="Match and build only; create nothing")
    conv_p.add_argument("--output-dir", "-o", type=Path, default=None,
                        help="Directory for conversion reports")
    conv_p.add_argument("--formats", nargs="+", choices=["json", "markdown"], default=None,
                        help="Report formats to write")
    conv_p.add_argument("--tenant-name", default=None, help="Tenant display name for reports")

    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def build_config(args: argparse.Namespace) -> ConverterConfig:
    """Build configuration from a config file, a profile and CLI overrides."""
    if args.config:
        if not args.config.exists():
            raise CLIError(f"Config file not found: {args.config}")
        config = ConverterConfig.from_file(str(args.config))
    else:
        config = ConverterConfig()

    if args.verbose:
        config.verbose = True
    if args.access_token:
        return config

    profile: Optional[TenantProfile] = None
    if args.profile:
        profile = resolve_profile(args.profile)
        if not profile:
            raise CLIError(
                f"Profile '{args.profile}' not found. Use 'profile list' to see available profiles."
            )
    elif not args.config and not args.tenant_id:
        profile = resolve_profile()

    if profile and profile.auth_mode == "delegated":
        config.auth.mode = "delegated"
    if args.delegated:
        config.auth.mode = "delegated"

    if profile:
        tenant_id = args.tenant_id or profile.tenant_id
        client_id = args.client_id or profile.client_id
        cert_path = str(args.cert_path) if args.cert_path else profile.resolve_cert_path()
    elif args.tenant_id and args.client_id:
        tenant_id = args.tenant_id
        client_id = args.client_id
        cert_path = str(args.cert_path) if args.cert_path else "./base64.txt"
    elif config.auth.certificate or config.auth.delegated:
        return config
    else:
        raise CLIError(
            "No tenant credentials found. Use --profile <name>, "
            "--tenant-id X --client-id Y, --config config.json or --access-token."
        )

    if config.auth.mode == "delegated":
        config.auth.delegated = DelegatedAuth(tenant_id=tenant_id, client_id=client_id)
    else:
        config.auth.certificate = CertificateAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            certificate_path=cert_path,
        )
    return config


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@asynccontextmanager
async def open_intune(
    config: ConverterConfig,
    access_token: Optional[str] = None,
    dry_run: bool = False,
    guardian: Optional[SafetyGuardian] = None,
) -> AsyncIterator[IntuneService]:
    """Authenticated Intune service for the lifetime of one command."""
    source = StaticTokenSource(access_token) if access_token else Authenticator(config.auth)
    tokens = AccessTokenCache(source)
    guardian = guardian or SafetyGuardian(dry_run=dry_run)

    async with GraphClient(tokens, guardian) as graph:
        yield IntuneService(graph, config.conversion)
        logger.debug(f"Graph stats: {graph.get_stats()}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def _cmd_tenant(intune: IntuneService, args: argparse.Namespace) -> int:
    info = await intune.get_tenant_info()
    if not info["connected"]:
        print(f"  ❌ Not connected: {info.get('error')}")
        return 1
    print(f"  🏢 {info.get('display_name')} ({info.get('tenant_id')})")
    return 0


async def _cmd_policies(intune: IntuneService, args: argparse.Namespace) -> int:
    policies = await intune.list_admin_template_policies()
    if not policies:
        print("  No Administrative Template policies found.")
        return 0
    print(f"\n  {'ID':<38s} {'Settings':>8s}  {'Modified':<20s} Name")
    print(f"  {'─'*38} {'─'*8}  {'─'*20} {'─'*30}")
    for p in sorted(policies, key=lambda p: (p.get("displayName") or "").lower()):
        modified = (p.get("lastModifiedDateTime") or "")[:19]
        print(f"  {p.get('id', ''):<38s} {p['settings_count']:>8d}  {modified:<20s} {p.get('displayName', '')}")
    print()
    return 0


async def _cmd_settings(intune: IntuneService, args: argparse.Namespace) -> int:
    settings = await intune.get_policy_settings(args.policy_id)
    for s in settings:
        definition = s.get("definition")
        if not definition:
            print("  ⚠  <definition unavailable>")
            continue
        state = "Enabled " if s.get("enabled") else "Disabled"
        scope = "user  " if definition.get("classType") == "user" else "device"
        print(f"  [{state}] [{scope}] {definition.get('categoryPath', '')}\\{definition.get('displayName', '')}")
        for pv in s.get("presentationValues") or []:
            label = (pv.get("presentation") or {}).get("label") or "value"
            value = pv.get("values") if "values" in pv else pv.get("value")
            print(f"      {label}: {value}")
    print(f"\n  {len(settings)} settings")
    return 0


async def _cmd_assignments(intune: IntuneService, args: argparse.Namespace) -> int:
    assignments = [parse_assignment(a) for a in await intune.get_policy_assignments(args.policy_id)]
    if not assignments:
        print("  Policy is not assigned.")
        return 0
    groups, filters = await asyncio.gather(
        intune.resolve_group_names(group_ids(assignments)),
        intune.resolve_filter_names(filter_ids(assignments)),
    )
    for r in resolve_assignments(assignments, groups, filters):
        line = f"  {r.target_type:<15s} {r.target_name}"
        if r.filter_id:
            line += f"  [filter {r.filter_type}: {r.filter_display_name}]"
        print(line)
    return 0


async def _cmd_search(intune: IntuneService, args: argparse.Namespace) -> int:
    definitions = await intune.search_settings_catalog(args.term)
    for d in definitions:
        print(f"  {d.id:<80s} {d.display_name}")
    print(f"\n  {len(definitions)} definitions")
    return 0


async def _cmd_definition(intune: IntuneService, args: argparse.Namespace) -> int:
    definition = await intune.get_setting_definition(args.definition_id)
    if definition is None:
        print(f"  ❌ Definition '{args.definition_id}' not found.")
        return 1
    print(json.dumps(definition.raw, indent=2, ensure_ascii=False))
    return 0


async def _cmd_scope_tags(intune: IntuneService, args: argparse.Namespace) -> int:
    for tag in await intune.get_role_scope_tags():
        builtin = " (built-in)" if tag.get("isBuiltIn") else ""
        print(f"  {tag.get('id', ''):<6s} {tag.get('displayName', '')}{builtin}")
    return 0


async def _cmd_filters(intune: IntuneService, args: argparse.Namespace) -> int:
    for f in await intune.list_assignment_filters():
        print(f"  {f.get('id', ''):<38s} {f.get('platform', ''):<14s} {f.get('displayName', '')}")
    return 0


def print_result(result: ConversionResult) -> None:
    icons = {"converted": "✅", "not_found": "❔", "error": "❌"}
    for d in result.details:
        extra = f" → {d.mapped_definition_id} ({d.confidence.value})" if d.confidence else ""
        if d.error:
            extra = f" — {d.error}"
        print(f"  {icons[d.status.value]} {d.setting_name}{extra}")

    print("\n" + "=" * 70)
    print(f"  Status:     {result.status.value.upper()}{' (dry run)' if result.dry_run else ''}")
    print(f"  Converted:  {result.converted_settings}/{result.total_settings}")
    print(f"  Confidence: {result.confidence_breakdown}")
    if result.new_policy_id:
        print(f"  New policy: {result.new_policy_id}")
    if result.assignments_copied:
        print(f"  Assignments copied: {result.assignments_copied}")
    if result.scope_tags_copied:
        print(f"  Scope tags copied:  {', '.join(result.scope_tags_copied)}")
    if result.error:
        print(f"  Error:      {result.error}")
    print("=" * 70)


async def run_convert(args: argparse.Namespace, config: ConverterConfig) -> int:
    request = ConversionRequest(
        policy_id=args.policy_id,
        new_name=args.name,
        new_description=args.description,
        include_assignments=(
            config.conversion.include_assignments
            if args.include_assignments is None else args.include_assignments
        ),
        copy_scope_tags=(
            config.conversion.copy_scope_tags
            if args.copy_scope_tags is None else args.copy_scope_tags
        ),
        dry_run=args.dry_run,
    )
    run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]

    guardian = SafetyGuardian(dry_run=request.dry_run)
    guardian.print_banner()

    async with open_intune(config, args.access_token, guardian=guardian) as intune:
        tenant = await intune.get_tenant_info()
        tenant_name = args.tenant_name or tenant.get("display_name") or "Unknown Tenant"
        print(f"\n📋 Run ID: {run_id}")
        print(f"🏢 Tenant: {tenant_name}\n")
        result = await PolicyConverter(intune).convert(request)

    print_result(result)

    output_dir = args.output_dir or Path(config.output_dir)
    formats = args.formats or config.formats
    if "json" in formats:
        path = export_json(result, output_dir, run_id, request.policy_id, guardian.get_audit_record())
        print(f"  📄 JSON:     {path}")
    if "markdown" in formats:
        path = export_markdown(result, output_dir, run_id, tenant_name, request.policy_id)
        print(f"  📝 Markdown: {path}")

    return 1 if result.status is ConversionStatus.FAILED else 0


COMMANDS = {
    "tenant": _cmd_tenant,
    "policies": _cmd_policies,
    "settings": _cmd_settings,
    "assignments": _cmd_assignments,
    "search": _cmd_search,
    "definition": _cmd_definition,
    "scope-tags": _cmd_scope_tags,
    "filters": _cmd_filters,
}


async def main_async(args: argparse.Namespace) -> int:
    config = build_config(args)
    configure_logging(config.verbose)

    if args.command == "convert":
        return await run_convert(args, config)

    handler = COMMANDS[args.command]
    async with open_intune(config, args.access_token, dry_run=True) as intune:
        return await handler(intune, args)


def main(argv: Optional[list[str]] = None) -> int:
    """Synchronous entry point for `python -m intune_template_converter`."""
    args = parse_args(argv)

    if args.command is None:
        print("Usage: python -m intune_template_converter <command> (see --help)")
        return 2
    if args.command == "profile":
        return _cmd_profile(args)
    if args.command == "permissions":
        for permission, reason in Authenticator.list_required_permissions().items():
            print(f"  {permission:<46s} {reason}")
        return 0

    try:
        return asyncio.run(main_async(args))
    except (CLIError, ValueError) as e:
        print(f"\n❌ {e}")
    except AuthenticationError as e:
        print(f"\n❌ Authentication failed: {e}")
    except (GraphAPIError, httpx.HTTPError) as e:
        print(f"\n❌ Graph request failed: {e}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
