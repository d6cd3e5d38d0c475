"""
Internal endpoints: member-join events from the gateway listener and administrative overrides.
Bearer INTERNAL_API_TOKEN required; disabled (503) when no token is configured.
"""
import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from verify_server import config, messages
from verify_server.eligibility import is_eligible, summarize_claims
from verify_server.identity_client import IdentityProviderError
from verify_server.membership_client import MembershipError
from verify_server.process_info import process_uptime

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def require_internal_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> None:
    """Dependency: Authorization: Bearer <INTERNAL_API_TOKEN>."""
    expected = request.app.state.internal_api_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Internal API disabled (INTERNAL_API_TOKEN not set)",
        )
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not secrets.compare_digest(credentials.credentials, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")


router = APIRouter(dependencies=[Depends(require_internal_token)])


def _membership_failed(e: MembershipError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Discord error: {e}")


@router.post("/events/member-join")
async def member_join(request: Request, subject_id: str, subject_label: str = ""):
    """A member joined the guild: send them a verification link unless they already have the role."""
    service = request.app.state.service
    label = subject_label or subject_id
    logger.info("New member joined: %s (%s)", label, subject_id)
    started = await service.start(subject_id, label)
    if started is None:
        return {"started": False}
    return {"started": True, "notified": started.notified}


@router.post("/admin/verify")
async def admin_verify(request: Request, subject_id: str, login: str):
    """Manual verification: look the login up on the intranet, check eligibility, grant the role."""
    membership = request.app.state.membership
    identity = request.app.state.identity
    try:
        if await membership.has_marker(subject_id):
            return {"verified": True, "changed": False}
    except MembershipError as e:
        raise _membership_failed(e)

    try:
        claims = await identity.fetch_user_by_login(login)
    except IdentityProviderError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"42 intranet error: {e}")

    if not is_eligible(claims):
        logger.info("Manual verification of %s refused: %s is not a current student", subject_id, login)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="The provided login is not a valid 42 student or is staff",
        )
    summary = summarize_claims(claims)

    try:
        await membership.grant_marker(subject_id)
    except MembershipError as e:
        logger.error("Manual verification of %s could not assign role: %s", subject_id, e)
        raise _membership_failed(e)

    try:
        await membership.notify(subject_id, messages.manual_verification_message())
    except MembershipError as e:
        logger.info("Could not send manual verification DM to %s: %s", subject_id, e)
    logger.info("Manually verified %s as %s", subject_id, summary["login"])
    return {
        "verified": True,
        "changed": True,
        "campus": summary["campus"],
        "level": summary["level"],
    }


@router.post("/admin/unverify")
async def admin_unverify(request: Request, subject_id: str):
    membership = request.app.state.membership
    try:
        if not await membership.has_marker(subject_id):
            return {"verified": False, "changed": False}
        await membership.revoke_marker(subject_id)
    except MembershipError as e:
        raise _membership_failed(e)
    logger.info("Removed 42 role from %s", subject_id)
    return {"verified": False, "changed": True}


@router.get("/admin/check")
async def admin_check(request: Request, subject_id: str):
    try:
        verified = await request.app.state.membership.has_marker(subject_id)
    except MembershipError as e:
        raise _membership_failed(e)
    return {"subject_id": subject_id, "verified": verified}


@router.get("/admin/status")
async def admin_status(request: Request):
    """Bot and server status plus guild verification stats. A Discord failure is reported, not raised."""
    state = request.app.state
    body = {
        "bot": "connected" if state.membership.connected else "disconnected",
        "pendingVerifications": state.service.registry.size(),
        "uptime": process_uptime(),
        "maxAgeSeconds": config.VERIFICATION_MAX_AGE_SECONDS,
        "sweepIntervalSeconds": config.SWEEP_INTERVAL_SECONDS,
    }
    try:
        body.update(await state.membership.guild_stats())
    except MembershipError as e:
        logger.warning("Could not read guild stats: %s", e)
        body["discordError"] = str(e)
    return body


@router.get("/admin/debug-permissions")
async def admin_debug_permissions(request: Request):
    """Bot role position and Manage Roles against the 42 role: why role assignment fails."""
    try:
        diagnostics = await request.app.state.membership.permission_diagnostics()
    except MembershipError as e:
        raise _membership_failed(e)
    if not diagnostics["canManageTargetRole"] or not diagnostics["manageRoles"]:
        logger.warning("Bot cannot assign the 42 role: %s", diagnostics)
    return diagnostics
