from __future__ import annotations

import json
from pathlib import Path

import pytest

from intune_template_converter import __main__ as cli
from intune_template_converter import profiles
from intune_template_converter.profiles import ProfileStore, TenantProfile


@pytest.fixture
def profiles_file(tmp_path, monkeypatch) -> Path:
    path = tmp_path / "profiles.json"
    monkeypatch.setattr(profiles, "DEFAULT_PROFILES_FILE", path)
    monkeypatch.delenv(cli.ACCESS_TOKEN_ENV, raising=False)
    return path


def test_convert_arguments() -> None:
    args = cli.parse_args(["convert", "p1", "--name", "New", "--dry-run", "--formats", "json"])

    assert args.command == "convert"
    assert args.policy_id == "p1"
    assert args.name == "New"
    assert args.dry_run is True
    assert args.include_assignments is None
    assert args.formats == ["json"]


def test_convert_requires_a_name() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["convert", "p1"])


def test_build_config_from_explicit_ids(profiles_file) -> None:
    args = cli.parse_args(["--tenant-id", "t", "--client-id", "c", "policies"])

    config = cli.build_config(args)

    assert config.auth.mode == "certificate"
    assert config.auth.certificate.tenant_id == "t"
    assert config.auth.certificate.certificate_path == "./base64.txt"


def test_build_config_delegated(profiles_file) -> None:
    args = cli.parse_args(["--tenant-id", "t", "--client-id", "c", "--delegated", "policies"])

    config = cli.build_config(args)

    assert config.auth.mode == "delegated"
    assert config.auth.delegated.client_id == "c"


def test_build_config_uses_default_profile(profiles_file) -> None:
    store = ProfileStore.load(profiles_file)
    store.add(TenantProfile("contoso", "tenant-1", "client-1", auth_mode="delegated"))

    config = cli.build_config(cli.parse_args(["policies"]))

    assert config.auth.delegated.tenant_id == "tenant-1"


def test_build_config_unknown_profile(profiles_file) -> None:
    with pytest.raises(cli.CLIError, match="not found"):
        cli.build_config(cli.parse_args(["--profile", "nope", "policies"]))


def test_build_config_without_credentials(profiles_file) -> None:
    with pytest.raises(cli.CLIError, match="No tenant credentials"):
        cli.build_config(cli.parse_args(["policies"]))


def test_build_config_reads_conversion_settings(profiles_file, tmp_path) -> None:
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({
        "auth": {"certificate": {"tenant_id": "t", "client_id": "c"}},
        "conversion": {"search_top": 25, "include_assignments": True},
        "formats": ["json"],
    }))

    config = cli.build_config(cli.parse_args(["--config", str(config_file), "policies"]))

    assert config.conversion.search_top == 25
    assert config.conversion.include_assignments is True
    assert config.formats == ["json"]
    assert config.auth.certificate.client_id == "c"


def test_profile_commands_round_trip(profiles_file, capsys) -> None:
    assert cli.main(["profile", "add", "fabrikam", "--tenant-id", "t", "--client-id", "c"]) == 0
    assert cli.main(["profile", "add", "contoso", "--tenant-id", "t2", "--client-id", "c2"]) == 0
    assert cli.main(["profile", "set-default", "contoso"]) == 0

    store = ProfileStore.load(profiles_file)
    assert store.default_profile == "contoso"
    assert [p.name for p in store.list_profiles()] == ["contoso", "fabrikam"]

    assert cli.main(["profile", "remove", "contoso"]) == 0
    assert ProfileStore.load(profiles_file).default_profile == "fabrikam"
    assert cli.main(["profile", "remove", "contoso"]) == 1


def test_main_without_command_prints_usage(capsys) -> None:
    assert cli.main([]) == 2
    assert "Usage" in capsys.readouterr().out


def test_profile_lookup_ignores_case_and_corrupt_file(tmp_path) -> None:
    path = tmp_path / "profiles.json"
    store = ProfileStore.load(path)
    store.add(TenantProfile("Contoso-Prod", "t", "c", auth_mode="delegated"))

    loaded = ProfileStore.load(path)
    assert loaded.get("contoso-prod").auth_mode == "delegated"
    assert loaded.default_profile == "Contoso-Prod"

    path.write_text("{not json")
    assert ProfileStore.load(path).profiles == {}
