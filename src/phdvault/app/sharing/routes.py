"""Share HTTP endpoints for patients and doctors.

Patient (owner) endpoints:

  POST   /api/v1/shares                 → issue a grant (token + PIN once)
  GET    /api/v1/shares                 → active grants
  GET    /api/v1/shares/history         → all grants, newest first
  GET    /api/v1/shares/{share_id}      → one grant, PIN included
  DELETE /api/v1/shares/{share_id}      → revoke (idempotent, 204)

Doctor (accessor) endpoints:

  GET    /api/v1/shared/{token}         → is this token live? (no records)
  POST   /api/v1/shared/access          → token or link + PIN → records

Error envelope: ``{"error": <code>, "detail": <message>}``. Unknown,
expired and revoked tokens share one 404 response.

This module provides:
  ``create_share_router``: FastAPI router factory over a SharingService.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from phdvault.app.security.auth_guard import require_role
from phdvault.app.security.token_verify import ROLE_DOCTOR, ROLE_PATIENT, AuthIdentity

from . import expiry
from .errors import (
    AccessError,
    InvalidPinError,
    NotFoundError,
    PersistenceError,
    PinAttemptsExceededError,
    ShareError,
    ValidationError,
)
from .links import extract_token
from .model import ShareGrant, ShareMethod, utcnow
from .service import MAX_HISTORY_LIMIT, SharingService
from .store import DEFAULT_HISTORY_LIMIT
from .tokens import is_well_formed_pin

_STATUS_BY_ERROR: tuple[tuple[type[ShareError], int], ...] = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (InvalidPinError, 403),
    (PinAttemptsExceededError, 429),
    (AccessError, 503),
    (PersistenceError, 503),
)


# ── Request schemas ──────────────────────────────────────────────────


class CreateShareRequest(BaseModel):
    """Request body for issuing a share."""

    record_ids: list[str] = Field(..., min_length=1, description='Records to share')
    duration_hours: float | None = Field(
        default=None,
        gt=0,
        description='Grant lifetime in hours (0.25 = 15 minutes); server default when omitted',
    )
    method: ShareMethod = Field(default=ShareMethod.LINK)


class AccessShareRequest(BaseModel):
    """Request body for redeeming a share."""

    token_or_link: str = Field(..., min_length=1, description='Share link or bare token')
    pin: str = Field(..., description='Five-digit PIN')


# ── Serialization ────────────────────────────────────────────────────


def _error(exc: ShareError) -> JSONResponse:
    status = next((s for cls, s in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    headers = None
    if isinstance(exc, PinAttemptsExceededError):
        headers = {'Retry-After': str(int(exc.retry_after) + 1)}
    return JSONResponse(
        status_code=status,
        content={'error': exc.code, 'detail': str(exc)},
        headers=headers,
    )


def grant_payload(
    grant: ShareGrant,
    *,
    include_pin: bool = False,
    link: str | None = None,
) -> dict[str, Any]:
    now = utcnow()
    body: dict[str, Any] = {
        'share_id': grant.id,
        'method': grant.method.value,
        'record_ids': list(grant.record_ids),
        'status': expiry.effective_status(grant, now).value,
        'is_usable': expiry.is_usable(grant, now),
        'expires_at': grant.expires_at.isoformat(),
        'expires_in': expiry.format_expires_in(grant, now),
        'created_at': grant.created_at.isoformat(),
        'accessed_at': grant.accessed_at.isoformat() if grant.accessed_at else None,
        'accessed_by': grant.accessed_by,
    }
    if include_pin:
        body['token'] = grant.token
        body['pin'] = grant.pin
    if link:
        body['link'] = link
    return body


# ── Route factory ────────────────────────────────────────────────────


def create_share_router(service: SharingService) -> APIRouter:
    """Create the share router over an injected SharingService."""
    router = APIRouter(prefix='/api/v1', tags=['shares'])
    patient = require_role(ROLE_PATIENT)
    doctor = require_role(ROLE_DOCTOR)

    @router.post('/shares', status_code=201)
    async def issue_share(
        body: CreateShareRequest,
        identity: AuthIdentity = Depends(patient),
    ):
        """Issue a share. The token and PIN are shown to the owner here."""
        try:
            grant = await service.issue_share(
                identity.user_id, body.record_ids, body.duration_hours, body.method,
            )
        except ShareError as exc:
            return _error(exc)
        return grant_payload(grant, include_pin=True, link=service.share_link(grant.token))

    @router.get('/shares')
    async def list_active_shares(identity: AuthIdentity = Depends(patient)):
        try:
            grants = await service.list_active_shares(identity.user_id)
        except ShareError as exc:
            return _error(exc)
        return {'shares': [grant_payload(g) for g in grants]}

    @router.get('/shares/history')
    async def list_share_history(
        limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT),
        identity: AuthIdentity = Depends(patient),
    ):
        try:
            grants = await service.list_share_history(identity.user_id, limit)
        except ShareError as exc:
            return _error(exc)
        return {'shares': [grant_payload(g) for g in grants]}

    @router.get('/shares/{share_id}')
    async def get_share(share_id: str, identity: AuthIdentity = Depends(patient)):
        """Owner view of one share, including PIN and link for re-sharing."""
        try:
            grant = await service.get_share(share_id, identity.user_id)
        except ShareError as exc:
            return _error(exc)
        if grant is None:
            return _error(NotFoundError('Share not found.'))
        return grant_payload(grant, include_pin=True, link=service.share_link(grant.token))

    @router.delete('/shares/{share_id}', status_code=204)
    async def revoke_share(share_id: str, identity: AuthIdentity = Depends(patient)):
        """Revoke a share. Unknown or foreign ids are accepted silently."""
        try:
            await service.revoke_share(share_id, identity.user_id)
        except ShareError as exc:
            return _error(exc)
        return Response(status_code=204)

    @router.post('/shared/access')
    async def access_share(
        body: AccessShareRequest,
        identity: AuthIdentity = Depends(doctor),
    ):
        """Redeem a share with token (or pasted link) and PIN."""
        token = extract_token(body.token_or_link)
        if not token:
            return _error(ValidationError('Enter a share link or code.'))
        if not is_well_formed_pin(body.pin.strip()):
            return _error(ValidationError('The PIN must be exactly 5 digits.'))
        try:
            result = await service.access_share(token, identity.user_id, body.pin.strip())
        except ShareError as exc:
            return _error(exc)
        return {
            **grant_payload(result.grant),
            'owner_id': result.grant.owner_id,
            'record_count': len(result.records),
            'records': result.records,
        }

    @router.get('/shared/{token}')
    async def resolve_share(token: str, identity: AuthIdentity = Depends(doctor)):
        """Confirm a token is live before prompting for the PIN."""
        try:
            grant = await service.resolve_token(token)
        except ShareError as exc:
            return _error(exc)
        return {
            'share_id': grant.id,
            'method': grant.method.value,
            'record_count': grant.record_count,
            'expires_at': grant.expires_at.isoformat(),
            'expires_in': expiry.format_expires_in(grant),
        }

    return router
