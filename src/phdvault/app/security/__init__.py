"""Authentication for the vault API."""

from .auth_guard import (
    AuthGuardMiddleware,
    get_auth_identity,
    require_role,
)
from .token_verify import (
    ROLE_DOCTOR,
    ROLE_PATIENT,
    AuthIdentity,
    StaticKeyProvider,
    TokenVerificationError,
    TokenVerifier,
    create_token_verifier,
    extract_bearer_token,
)

__all__ = [
    'AuthGuardMiddleware',
    'AuthIdentity',
    'ROLE_DOCTOR',
    'ROLE_PATIENT',
    'StaticKeyProvider',
    'TokenVerificationError',
    'TokenVerifier',
    'create_token_verifier',
    'extract_bearer_token',
    'get_auth_identity',
    'require_role',
]
