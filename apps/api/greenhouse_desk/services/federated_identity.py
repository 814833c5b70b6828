"""Verifies the OIDC ID token that gates the public ticket form."""

from __future__ import annotations

from dataclasses import dataclass
import logging

import httpx
import jwt

from ..core.config import Settings, settings as default_settings
from ..core.errors import GatewayUnavailable, PermissionDenied, SessionExpired

logger = logging.getLogger(__name__)

ALLOWED_ALGORITHMS = ["RS256", "ES256"]


def _is_verified(claims: dict) -> bool:
    # Some providers send the flag as a string.
    return claims.get("email_verified") in (True, "true")


@dataclass
class FederatedIdentity:
    subject: str
    email: str
    name: str | None = None


class IdentityVerifier:
    def __init__(self, config: Settings | None = None, http: httpx.Client | None = None):
        self.config = config or default_settings
        self.http = http or httpx.Client(timeout=self.config.http_timeout_seconds)
        self._keys: jwt.PyJWKSet | None = None

    @property
    def configured(self) -> bool:
        return bool(self.config.public_form_jwks_url and self.config.public_form_audience)

    def _fetch_keys(self) -> jwt.PyJWKSet:
        try:
            resp = self.http.get(self.config.public_form_jwks_url)
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"Identity provider unreachable: {exc}") from exc
        if resp.status_code != 200:
            raise GatewayUnavailable(f"Identity provider returned {resp.status_code}")
        return jwt.PyJWKSet.from_dict(resp.json())

    def _signing_key(self, kid: str | None, refresh: bool = False):
        if self._keys is None or refresh:
            self._keys = self._fetch_keys()
        for key in self._keys.keys:
            if kid is None or key.key_id == kid:
                return key
        return None

    def verify(self, id_token: str) -> FederatedIdentity:
        if not self.configured:
            raise GatewayUnavailable("Public form sign-in is not configured")
        try:
            header = jwt.get_unverified_header(id_token)
        except jwt.InvalidTokenError as exc:
            raise PermissionDenied("Invalid identity token") from exc
        kid = header.get("kid")
        key = self._signing_key(kid)
        if key is None:
            # Keys rotate; look again once before giving up.
            key = self._signing_key(kid, refresh=True)
        if key is None:
            raise PermissionDenied("Unknown identity token signing key")

        try:
            claims = jwt.decode(
                id_token,
                key.key,
                algorithms=ALLOWED_ALGORITHMS,
                audience=self.config.public_form_audience,
                issuer=self.config.public_form_issuer or None,
                options={"verify_iss": bool(self.config.public_form_issuer)},
            )
        except jwt.ExpiredSignatureError as exc:
            raise SessionExpired("Identity token expired") from exc
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected public form identity token: %s", exc)
            raise PermissionDenied("Invalid identity token") from exc

        email = claims.get("email")
        if email:
            if self.config.public_form_require_verified_email and not _is_verified(claims):
                raise PermissionDenied("Identity token email is not verified")
        elif self.config.public_form_username_as_email:
            # Opt-in for directories whose usernames are mailbox addresses.
            email = claims.get("preferred_username")
        if not email:
            raise PermissionDenied("Identity token carries no email")
        return FederatedIdentity(subject=str(claims.get("sub", "")), email=email, name=claims.get("name"))
