from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import UTC, datetime
from typing import Any

from fastapi import (
    APIRouter,
    Body,
    Depends,
    HTTPException,
    Query,
    Request,
    Response,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from botfleet.control import ControlAction, ControlPlane
from botfleet.engine import Subscription
from botfleet.sessions import Tenant, TenantNotFoundError
from botfleet.settings import Settings
from botfleet.types import SlotId

logger = logging.getLogger("botfleet.web")

SESSION_COOKIE = "sessionId"

router = APIRouter()


async def get_control(request: Request) -> ControlPlane:
    return request.app.state.control


def _set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=int(settings.session_max_age_seconds),
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


async def current_tenant(
    request: Request,
    response: Response,
    control: ControlPlane = Depends(get_control),
) -> Tenant:
    """Resolve the caller's tenant, silently issuing a new session if needed."""
    try:
        tenant, new_token = control.resolve_or_create(request.cookies.get(SESSION_COOKIE))
    except OSError as exc:
        logger.exception("session_create_failed")
        raise HTTPException(status_code=503, detail="Session storage unavailable") from exc
    if new_token is not None:
        _set_session_cookie(response, new_token, control.settings)
    return tenant


async def tenant_not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    """A tenant reclaimed under a stale caller: hand out a fresh session."""
    control: ControlPlane = request.app.state.control
    response = JSONResponse(
        {"success": False, "message": "Session expired, a new session was issued"},
        status_code=409,
    )
    try:
        _, session = control.registry.create_tenant_session()
    except OSError:
        logger.exception("session_create_failed")
        response.delete_cookie(SESSION_COOKIE, path="/")
        return response
    _set_session_cookie(response, session.token, control.settings)
    return response


@router.get("/api/status")
async def get_status(
    tenant: Tenant = Depends(current_tenant),
    control: ControlPlane = Depends(get_control),
) -> dict[str, Any]:
    return control.get_status(tenant.tenant_id)


@router.get("/api/logs")
async def get_logs(
    limit: int = Query(default=100, ge=0, le=1000),
    tenant: Tenant = Depends(current_tenant),
    control: ControlPlane = Depends(get_control),
) -> dict[str, Any]:
    return {"logs": control.get_logs(tenant.tenant_id, limit)}


@router.post("/api/bot/{action}/{slot_id}")
async def slot_action(
    action: ControlAction,
    slot_id: SlotId,
    tenant: Tenant = Depends(current_tenant),
    control: ControlPlane = Depends(get_control),
) -> dict[str, Any]:
    result = await control.run_slot_action(tenant.tenant_id, action, slot_id)
    return result.to_dict()


@router.post("/api/bot/{action}")
async def batch_action(
    action: ControlAction,
    tenant: Tenant = Depends(current_tenant),
    control: ControlPlane = Depends(get_control),
) -> dict[str, Any]:
    result = await control.run_batch_action(tenant.tenant_id, action)
    return result.to_dict()


@router.get("/api/config/{slot_id}")
async def get_config(
    slot_id: SlotId,
    tenant: Tenant = Depends(current_tenant),
    control: ControlPlane = Depends(get_control),
) -> dict[str, Any]:
    cfg = control.get_config(tenant.tenant_id, slot_id)
    return {"success": True, "data": cfg.to_public()}


@router.post("/api/config/{slot_id}")
async def save_config(
    slot_id: SlotId,
    payload: dict[str, Any] = Body(...),
    tenant: Tenant = Depends(current_tenant),
    control: ControlPlane = Depends(get_control),
) -> dict[str, Any]:
    try:
        cfg = control.save_config(tenant.tenant_id, slot_id, payload)
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        return {"success": False, "message": "Invalid configuration", "errors": errors}
    except OSError as e:
        logger.exception(
            "config_save_failed",
            extra={"tenant_id": tenant.tenant_id, "slot": slot_id.value},
        )
        return {"success": False, "message": f"Failed to save configuration: {e}"}
    return {
        "success": True,
        "message": f"Configuration saved for {slot_id.value}",
        "config": cfg.to_public(),
    }


@router.post("/api/logout")
async def logout(
    response: Response,
    tenant: Tenant = Depends(current_tenant),
    control: ControlPlane = Depends(get_control),
) -> dict[str, Any]:
    result = control.logout(tenant.tenant_id)
    response.delete_cookie(SESSION_COOKIE, path="/", httponly=True, samesite="lax")
    payload = result.to_dict()
    if result.success:
        payload["redirect"] = "/"
    return payload


@router.post("/api/heartbeat")
async def heartbeat(
    tenant: Tenant = Depends(current_tenant),
    control: ControlPlane = Depends(get_control),
) -> dict[str, Any]:
    return {
        "success": control.heartbeat(tenant.tenant_id),
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.post("/api/cleanup")
async def cleanup(
    tenant: Tenant = Depends(current_tenant),
    control: ControlPlane = Depends(get_control),
) -> dict[str, Any]:
    return control.cleanup(tenant.tenant_id).to_dict()


@router.api_route("/api/beacon-cleanup", methods=["GET", "POST"])
async def beacon_cleanup(
    request: Request,
    control: ControlPlane = Depends(get_control),
) -> dict[str, Any]:
    # Sent from a closing tab; never issues a new session.
    tenant = control.resolve(request.cookies.get(SESSION_COOKIE))
    if tenant is not None:
        result = control.cleanup(tenant.tenant_id)
        if not result.success:
            return {"success": False, "message": f"Beacon cleanup failed: {result.message}"}
    return {"success": True, "message": "Beacon cleanup completed"}


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        event = await subscription.get()
        if event is None:
            await websocket.close()
            return
        await websocket.send_json({"type": event.kind, "data": event.data})


async def _drain(websocket: WebSocket) -> None:
    # Observers do not send commands; reading only detects the disconnect.
    with suppress(WebSocketDisconnect):
        while True:
            await websocket.receive_text()


@router.websocket("/ws")
async def observer_feed(websocket: WebSocket) -> None:
    control: ControlPlane = websocket.app.state.control
    try:
        feed = control.open_feed(websocket.cookies.get(SESSION_COOKIE))
    except TenantNotFoundError:
        feed = None
    if feed is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    tasks: set[asyncio.Task[None]] = set()
    try:
        await websocket.send_json({"type": "status", "data": feed.status})
        await websocket.send_json({"type": "logs", "data": feed.logs})
        tasks = {
            asyncio.create_task(_forward(websocket, feed.subscription)),
            asyncio.create_task(_drain(websocket)),
        }
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("observer_feed_error", extra={"tenant_id": feed.tenant_id})
    except WebSocketDisconnect:
        pass
    finally:
        for task in tasks:
            task.cancel()
        feed.subscription.close()
