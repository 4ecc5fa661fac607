"""FastAPI dependency injection — provides the pipeline objects and caller identity.

Everything stateful (catalog, job queue, intake service, monitor) is built
once in the app lifespan and stashed on ``app.state``; these helpers read it
back per request.

Who may trigger generation: the client themself (``X-User-ID`` equal to
the client id) or an operator holding the admin key.
"""

import hmac
from dataclasses import dataclass

from fastapi import Header, HTTPException, Request

from packet_pipeline.catalog import CatalogStore
from packet_pipeline.intake import IntakeService
from packet_pipeline.queue import JobQueue, QueueMonitor


# ------------------------------------------------------------------
# Pipeline objects, stashed on app.state during lifespan
# ------------------------------------------------------------------

def get_catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


def get_queue(request: Request) -> JobQueue:
    return request.app.state.queue


def get_intake(request: Request) -> IntakeService:
    return request.app.state.intake


def get_monitor(request: Request) -> QueueMonitor:
    return request.app.state.monitor


# ------------------------------------------------------------------
# Caller identity
# ------------------------------------------------------------------

def _check_proxy_secret(request: Request, x_proxy_secret: str | None) -> None:
    """Reject forged ``X-User-ID`` headers when a proxy secret is configured."""
    expected_secret: str | None = request.app.state.settings.trusted_proxy_secret
    if not expected_secret:
        return
    if not x_proxy_secret:
        raise HTTPException(status_code=403, detail="X-Proxy-Secret header is required")
    # Constant-time comparison to prevent timing side-channels.
    if not hmac.compare_digest(x_proxy_secret, expected_secret):
        raise HTTPException(status_code=403, detail="Invalid proxy secret")


async def get_user_id(
    request: Request,
    x_user_id: str | None = Header(None, alias="X-User-ID"),
    x_proxy_secret: str | None = Header(None, alias="X-Proxy-Secret"),
) -> str:
    """Extract the client identity from the ``X-User-ID`` header (401 if absent)."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-ID header is required")
    _check_proxy_secret(request, x_proxy_secret)
    return x_user_id


def _admin_key_matches(request: Request, x_admin_key: str | None) -> bool:
    expected: str | None = request.app.state.settings.admin_api_key
    if not expected or not x_admin_key:
        return False
    return hmac.compare_digest(x_admin_key, expected)


async def require_admin_key(
    request: Request,
    x_admin_key: str | None = Header(None, alias="X-Admin-Key"),
) -> str:
    """Validate the ``X-Admin-Key`` header against ``ADMIN_API_KEY``.

    Raises 401 if the header is missing, 403 if admin access is not
    configured or the key does not match.
    """
    if not request.app.state.settings.admin_api_key:
        raise HTTPException(
            status_code=403,
            detail="Admin endpoints are disabled (ADMIN_API_KEY not configured)",
        )
    if not x_admin_key:
        raise HTTPException(status_code=401, detail="X-Admin-Key header is required")
    if not _admin_key_matches(request, x_admin_key):
        raise HTTPException(status_code=403, detail="Invalid admin key")
    return x_admin_key


@dataclass(frozen=True)
class Caller:
    """Identity of the requester for generation endpoints."""

    user_id: str | None
    is_admin: bool

    def can_act_for(self, client_id: str) -> bool:
        return self.is_admin or (self.user_id is not None and self.user_id == client_id)


async def get_caller(
    request: Request,
    x_user_id: str | None = Header(None, alias="X-User-ID"),
    x_proxy_secret: str | None = Header(None, alias="X-Proxy-Secret"),
    x_admin_key: str | None = Header(None, alias="X-Admin-Key"),
) -> Caller:
    """Resolve either a client identity or admin access (401 if neither)."""
    if x_admin_key:
        if not _admin_key_matches(request, x_admin_key):
            raise HTTPException(status_code=403, detail="Invalid admin key")
        return Caller(user_id=x_user_id, is_admin=True)
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-ID or X-Admin-Key header is required")
    _check_proxy_secret(request, x_proxy_secret)
    return Caller(user_id=x_user_id, is_admin=False)


def ensure_can_generate(caller: Caller, client_id: str) -> None:
    """403 unless *caller* may trigger generation for *client_id*."""
    if not caller.can_act_for(client_id):
        raise HTTPException(
            status_code=403,
            detail="Not allowed to trigger generation for this client",
        )
