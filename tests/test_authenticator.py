from __future__ import annotations

import pytest

from intune_template_converter.auth.authenticator import AuthenticationError, Authenticator
from intune_template_converter.config import CERT_PASSWORD_ENV, AuthConfig, CertificateAuth


@pytest.mark.asyncio
async def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(AuthenticationError, match="Unknown auth mode"):
        await Authenticator(AuthConfig(mode="kerberos")).acquire_token()


@pytest.mark.asyncio
async def test_missing_certificate_config() -> None:
    with pytest.raises(AuthenticationError, match="not provided"):
        await Authenticator(AuthConfig(mode="certificate")).acquire_token()


@pytest.mark.asyncio
async def test_missing_certificate_file(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(CERT_PASSWORD_ENV, "secret")
    config = AuthConfig(certificate=CertificateAuth("t", "c", str(tmp_path / "missing.txt")))

    with pytest.raises(AuthenticationError, match="Certificate file not found"):
        await Authenticator(config).acquire_token()


@pytest.mark.asyncio
async def test_undecodable_certificate(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(CERT_PASSWORD_ENV, "secret")
    cert = tmp_path / "base64.txt"
    cert.write_text("bm90IGEgcGZ4")
    config = AuthConfig(certificate=CertificateAuth("t", "c", str(cert)))

    with pytest.raises(AuthenticationError, match="Failed to load certificate"):
        await Authenticator(config).acquire_token()


def test_token_result_sets_expiry() -> None:
    auth = Authenticator(AuthConfig())

    token = auth._store_result({"access_token": "abc", "expires_in": 600}, "Test")

    assert token == "abc"
    assert auth.access_token == "abc"
    assert auth.token_expiry is not None


def test_failed_token_result_raises() -> None:
    with pytest.raises(AuthenticationError, match="invalid_client"):
        Authenticator(AuthConfig())._store_result({"error": "invalid_client"}, "Test")


def test_required_permissions_cover_catalog_writes() -> None:
    assert "DeviceManagementConfiguration.ReadWrite.All" in Authenticator.list_required_permissions()
