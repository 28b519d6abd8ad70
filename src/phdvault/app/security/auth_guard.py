"""Auth guard middleware and role dependencies.

The middleware verifies the ``Authorization: Bearer`` Supabase token on
every non-exempt path and stores the result on
``request.state.auth_identity``. Route handlers then use
``get_auth_identity`` or ``require_role`` as FastAPI dependencies.
"""

from __future__ import annotations

from typing import Callable

from fastapi import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from phdvault.app.observability import get_logger

from .token_verify import (
    AuthIdentity,
    TokenVerificationError,
    TokenVerifier,
    extract_bearer_token,
)

logger = get_logger(__name__)

DEFAULT_EXEMPT_PREFIXES: tuple[str, ...] = (
    '/health',
    '/metrics',
    '/docs',
    '/openapi.json',
)


def _unauthorized(code: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={'error': 'unauthorized', 'code': code, 'detail': detail},
        headers={'WWW-Authenticate': 'Bearer'},
    )


class AuthGuardMiddleware(BaseHTTPMiddleware):
    """Reject requests to protected paths without a valid bearer token.

    Args:
        app: The ASGI application.
        token_verifier: Verifier for Supabase access tokens.
        exempt_prefixes: Path prefixes that skip authentication.
    """

    def __init__(
        self,
        app,
        token_verifier: TokenVerifier,
        exempt_prefixes: tuple[str, ...] = DEFAULT_EXEMPT_PREFIXES,
    ) -> None:
        super().__init__(app)
        self._verifier = token_verifier
        self._exempt_prefixes = exempt_prefixes

    def _is_exempt(self, path: str) -> bool:
        return any(path == p or path.startswith(p.rstrip('/') + '/') for p in self._exempt_prefixes)

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.auth_identity = None

        if request.method == 'OPTIONS' or self._is_exempt(request.url.path):
            return await call_next(request)

        token = extract_bearer_token(request)
        if not token:
            return _unauthorized('no_credentials', 'Authentication required')

        try:
            request.state.auth_identity = self._verifier.verify(token)
        except TokenVerificationError as exc:
            logger.info('auth_rejected', code=exc.code)
            return _unauthorized(exc.code, exc.detail)

        return await call_next(request)


def get_auth_identity(request: Request) -> AuthIdentity:
    """FastAPI dependency returning the authenticated identity (401 otherwise)."""
    identity: AuthIdentity | None = getattr(request.state, 'auth_identity', None)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={'error': 'unauthorized', 'code': 'no_credentials', 'detail': 'Authentication required'},
            headers={'WWW-Authenticate': 'Bearer'},
        )
    return identity


def require_role(role: str) -> Callable[[Request], AuthIdentity]:
    """Dependency factory: the caller must hold *role*."""

    def _dependency(request: Request) -> AuthIdentity:
        identity = get_auth_identity(request)
        if identity.role != role:
            raise HTTPException(
                status_code=403,
                detail={'error': 'forbidden', 'detail': f'This action requires the {role} role.'},
            )
        return identity

    return _dependency
