"""
Authentication module — Supports certificate-based and delegated device-code auth.
Uses MSAL for token acquisition against Microsoft Identity Platform.
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
import time
from typing import Optional

from cryptography.hazmat.primitives.serialization import pkcs12, Encoding, PrivateFormat, NoEncryption
from cryptography.hazmat.primitives.hashes import SHA1
import msal

from ..config import AuthConfig, CERT_PASSWORD_ENV, REQUIRED_PERMISSIONS

logger = logging.getLogger("intune_template_converter.auth")

# Default scopes for app-only auth
APP_SCOPES = ["https://graph.microsoft.com/.default"]

# Used when MSAL omits expires_in
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


class Authenticator:
    """
    Handles MSAL-based authentication for Microsoft Graph.
    Supports:
      - Certificate-based app-only authentication
      - Delegated authentication (device code flow, silent refresh afterwards)
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._access_token: Optional[str] = None
        self._token_expiry: Optional[float] = None
        self._confidential_app: Optional[msal.ConfidentialClientApplication] = None
        self._public_app: Optional[msal.PublicClientApplication] = None

    async def acquire_token(self) -> str:
        """Acquire an access token based on configured auth mode."""
        if self.config.mode == "certificate":
            return self._acquire_certificate_token()
        elif self.config.mode == "delegated":
            return self._acquire_delegated_token()
        else:
            raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")

    def _load_certificate(self) -> tuple[str, str]:
        """Return (thumbprint, private key PEM) from the base64 PFX file."""
        cert_config = self.config.certificate
        assert cert_config is not None

        cert_path = cert_config.certificate_path
        password = cert_config.certificate_password
        if not password:
            password = os.environ.get(CERT_PASSWORD_ENV, "")
        if not password:
            password = getpass.getpass("Enter the certificate password: ")

        try:
            with open(cert_path, "r") as f:
                cert_base64 = f.read().strip()

            cert_bytes = base64.b64decode(cert_base64)
            password_bytes = password.encode("utf-8") if password else None

            private_key, certificate, _ = pkcs12.load_key_and_certificates(
                cert_bytes, password_bytes
            )
            if private_key is None or certificate is None:
                raise AuthenticationError(
                    f"Certificate file {cert_path} has no private key or certificate."
                )

            private_key_pem = private_key.private_bytes(
                Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
            ).decode("utf-8")
            thumbprint = certificate.fingerprint(SHA1()).hex()

        except FileNotFoundError:
            raise AuthenticationError(f"Certificate file not found: {cert_path}")
        except AuthenticationError:
            raise
        except Exception as e:
            raise AuthenticationError(f"Failed to load certificate: {e}")

        logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")
        return thumbprint, private_key_pem

    def _acquire_certificate_token(self) -> str:
        """Acquire token using certificate-based client credentials."""
        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")

        if self._confidential_app is None:
            logger.info("Authenticating with certificate-based app credentials...")
            thumbprint, private_key_pem = self._load_certificate()
            self._confidential_app = msal.ConfidentialClientApplication(
                client_id=cert_config.client_id,
                authority=f"https://login.microsoftonline.com/{cert_config.tenant_id}",
                client_credential={
                    "thumbprint": thumbprint,
                    "private_key": private_key_pem,
                },
            )

        # MSAL serves this from its in-memory cache until the token nears expiry
        result = self._confidential_app.acquire_token_for_client(scopes=APP_SCOPES)
        return self._store_result(result, "Certificate")

    def _acquire_delegated_token(self) -> str:
        """Acquire token using the device code flow, silently when possible."""
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")

        if self._public_app is None:
            self._public_app = msal.PublicClientApplication(
                client_id=deleg_config.client_id,
                authority=f"https://login.microsoftonline.com/{deleg_config.tenant_id}",
            )
        app = self._public_app

        accounts = app.get_accounts()
        if accounts:
            result = app.acquire_token_silent(deleg_config.scopes, account=accounts[0])
            if result and "access_token" in result:
                logger.debug("Delegated token refreshed silently.")
                return self._store_result(result, "Delegated")

        logger.info("Initiating device code authentication flow...")
        flow = app.initiate_device_flow(scopes=deleg_config.scopes)
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        print(f"\n{'='*60}")
        print(f"  To sign in, open: {flow['verification_uri']}")
        print(f"  Enter code: {flow['user_code']}")
        print(f"{'='*60}\n")

        result = app.acquire_token_by_device_flow(flow)
        return self._store_result(result, "Delegated")

    def _store_result(self, result: dict, label: str) -> str:
        if "access_token" in result:
            self._access_token = result["access_token"]
            lifetime = float(result.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS)
            self._token_expiry = time.time() + lifetime
            logger.info(f"{label} authentication successful.")
            return self._access_token
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"{label} auth failed: {error}")

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def token_expiry(self) -> Optional[float]:
        """Epoch seconds at which the current token expires."""
        return self._token_expiry

    @staticmethod
    def list_required_permissions() -> dict[str, str]:
        """Return the map of required Graph API permissions."""
        return REQUIRED_PERMISSIONS
