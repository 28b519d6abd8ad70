"""Supabase access-token verification.

Validates Supabase-issued JWTs and extracts the caller's identity:

  1. Resolve the signing key (static HS256 project secret, or the
     project's JWKS endpoint for asymmetric keys).
  2. Verify signature, audience and expiry with PyJWT.
  3. Map the claims to an ``AuthIdentity`` with the vault role
     (``patient`` or ``doctor``).

The vault role is read from ``app_metadata.role`` (server-controlled).
``user_metadata.role`` is user-editable and only counts when the verifier
is built with ``trust_user_metadata`` (local development).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import jwt
from jwt import PyJWKClient, PyJWKClientError
from starlette.requests import Request

DEFAULT_AUDIENCE = 'authenticated'
JWKS_CACHE_TTL_SECONDS = 300
BEARER_PREFIX = 'Bearer '

ROLE_PATIENT = 'patient'
ROLE_DOCTOR = 'doctor'
VALID_ROLES = frozenset({ROLE_PATIENT, ROLE_DOCTOR})


@dataclass(frozen=True, slots=True)
class AuthIdentity:
    """Verified caller identity.

    Attributes:
        user_id: Supabase ``auth.users`` id (``sub`` claim).
        email: Lower-cased email, empty when absent.
        role: Vault role, ``patient`` or ``doctor``.
        raw_claims: Decoded JWT payload.
    """

    user_id: str
    email: str = ''
    role: str = ROLE_PATIENT
    raw_claims: dict[str, Any] = field(default_factory=dict)

    @property
    def is_doctor(self) -> bool:
        return self.role == ROLE_DOCTOR


class TokenVerificationError(Exception):
    """Raised when token verification fails."""

    def __init__(self, code: str, detail: str = '') -> None:
        self.code = code
        self.detail = detail
        super().__init__(f'{code}: {detail}' if detail else code)


class KeyProvider(Protocol):
    def get_signing_key(self, token: str) -> Any: ...


class JWKSKeyProvider:
    """Signing keys from the Supabase JWKS endpoint (cached by PyJWKClient)."""

    def __init__(self, jwks_url: str, cache_ttl: int = JWKS_CACHE_TTL_SECONDS) -> None:
        self._client = PyJWKClient(jwks_url, cache_jwk_set=True, lifespan=cache_ttl)

    def get_signing_key(self, token: str) -> Any:
        try:
            return self._client.get_signing_key_from_jwt(token).key
        except PyJWKClientError as exc:
            raise TokenVerificationError('jwks_fetch_error', str(exc)) from exc
        except jwt.InvalidTokenError as exc:
            # Unparseable header, so there is no kid to look up.
            raise TokenVerificationError('invalid_token', str(exc)) from exc


class StaticKeyProvider:
    """HS256 project secret."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def get_signing_key(self, token: str) -> str:
        return self._secret


def _claim_role(claims: dict[str, Any], trust_user_metadata: bool = False) -> str:
    sources = ('app_metadata', 'user_metadata') if trust_user_metadata else ('app_metadata',)
    for source in sources:
        meta = claims.get(source)
        if isinstance(meta, dict):
            role = str(meta.get('role', '')).lower()
            if role in VALID_ROLES:
                return role
    return ROLE_PATIENT


class TokenVerifier:
    """Verifies Supabase JWTs and extracts identity claims."""

    def __init__(
        self,
        key_provider: KeyProvider,
        audience: str = DEFAULT_AUDIENCE,
        algorithms: list[str] | None = None,
        *,
        trust_user_metadata: bool = False,
    ) -> None:
        self._key_provider = key_provider
        self._audience = audience
        self._algorithms = algorithms or ['RS256', 'ES256']
        self._trust_user_metadata = trust_user_metadata

    def verify(self, token: str) -> AuthIdentity:
        """Verify *token* and return the caller identity.

        Raises:
            TokenVerificationError: On any verification failure.
        """
        if not token or not token.strip():
            raise TokenVerificationError('empty_token')

        try:
            key = self._key_provider.get_signing_key(token)
            claims = jwt.decode(
                token,
                key,
                algorithms=self._algorithms,
                audience=self._audience,
                options={'require': ['sub', 'exp', 'aud']},
            )
        except jwt.ExpiredSignatureError:
            raise TokenVerificationError('token_expired')
        except jwt.InvalidAudienceError:
            raise TokenVerificationError('invalid_audience', f'expected {self._audience}')
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError('invalid_token', str(exc))

        user_id = claims.get('sub')
        if not user_id:
            raise TokenVerificationError('missing_sub_claim')

        email = claims.get('email') or ''
        return AuthIdentity(
            user_id=str(user_id),
            email=email.lower(),
            role=_claim_role(claims, self._trust_user_metadata),
            raw_claims=claims,
        )


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get('authorization', '')
    if auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip() or None
    return None


def create_token_verifier(
    supabase_url: str | None = None,
    jwt_secret: str | None = None,
    audience: str = DEFAULT_AUDIENCE,
    trust_user_metadata: bool = False,
) -> TokenVerifier:
    """Build a verifier for the project's signing setup.

    The HS256 project secret wins when given; otherwise keys come from the
    project's JWKS endpoint. With ``trust_user_metadata`` a self-chosen
    ``user_metadata.role`` also counts; keep it off outside local development.

    Raises:
        ValueError: If neither a secret nor a project URL is provided.
    """
    if jwt_secret:
        return TokenVerifier(
            StaticKeyProvider(jwt_secret), audience, ['HS256'],
            trust_user_metadata=trust_user_metadata,
        )

    if supabase_url:
        jwks_url = f'{supabase_url.rstrip("/")}/auth/v1/.well-known/jwks.json'
        return TokenVerifier(
            JWKSKeyProvider(jwks_url), audience, trust_user_metadata=trust_user_metadata,
        )

    raise ValueError('Either jwt_secret (HS256) or supabase_url (JWKS) is required')
