"""FastAPI server running over Unix Domain Socket."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, StreamingResponse

from adb_manager import __version__
from adb_manager.config import Settings
from adb_manager.daemon.core import ManagerCore
from adb_manager.daemon.models import (
    ConnectRequest,
    DisconnectRequest,
    InputRequest,
    MirrorStartRequest,
    MirrorStopRequest,
    PairRequest,
)
from adb_manager.device.models import DeviceEvent, EventKind
from adb_manager.errors import ManagerError, internal_error, invalid_request_error
from adb_manager.log_config import configure_logging
from adb_manager.validation import validate_host

logger = structlog.get_logger()

ResponsePayload = dict[str, Any]
EndpointResponse = Response | ResponsePayload

# Status codes by error class; anything else is a bad request
_SERVER_ERRORS = {"ERR_TOOL_NOT_FOUND", "ERR_SPAWN_FAILED", "ERR_INTERNAL"}
_UPSTREAM_ERRORS = {
    "ERR_PAIR_CONNECTION",
    "ERR_PAIR_AUTH",
    "ERR_PAIR_TIMEOUT",
    "ERR_PAIR_FAILED",
    "ERR_CONNECT_REFUSED",
    "ERR_CONNECT_TIMEOUT",
    "ERR_CONNECT_UNREACHABLE",
    "ERR_CONNECT_FAILED",
    "ERR_COMMAND_FAILED",
    "ERR_MIRROR_FAILED",
    "ERR_PROCESS_FAILED",
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage daemon lifecycle."""
    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_json)
    logger.info("daemon_starting", version=__version__)
    app.state.core = ManagerCore(settings)
    await app.state.core.start()
    yield
    logger.info("daemon_stopping")
    await app.state.core.stop()


app = FastAPI(
    title="ADB Manager Daemon",
    version=__version__,
    lifespan=lifespan,
)


def _status_for(error: ManagerError) -> int:
    if error.code in _SERVER_ERRORS:
        return 500
    if error.code in _UPSTREAM_ERRORS:
        return 502
    if error.code == "ERR_SESSION_ACTIVE":
        return 409
    if error.code == "ERR_NETWORK_UNAVAILABLE":
        return 503
    return 400


def _error_response(error: ManagerError, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "error": error.to_dict()},
    )


def _failure(exc: Exception, event: str, **context: Any) -> JSONResponse:
    """Turn an exception caught in a handler into an error response.

    Must be called from inside the ``except`` block so unexpected errors are
    logged with their traceback.
    """
    if isinstance(exc, ManagerError):
        logger.info(event, code=exc.code, **context)
        return _error_response(exc, _status_for(exc))
    logger.exception(event, **context)
    return _error_response(internal_error(type(exc).__name__), status_code=500)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()]
    reason = ", ".join(f for f in fields if f) or "body"
    logger.info("request_invalid", path=request.url.path, fields=fields)
    return _error_response(invalid_request_error(reason, fields), status_code=400)


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check endpoint with tracker and session status."""
    core: ManagerCore = app.state.core
    return {
        "status": "ok",
        "version": __version__,
        "running": core.is_running,
        "tracking": core.tracker.is_tracking,
        "devices": len(core.tracker.snapshot()),
        "sessions": len(core.supervisor.list_sessions()),
    }


# Devices


@app.get("/devices", response_model=None)
async def list_devices() -> EndpointResponse:
    """List attached devices with model, manufacturer and version."""
    core: ManagerCore = app.state.core
    try:
        devices = await core.tracker.list_devices()
    except Exception as exc:
        return _failure(exc, "list_devices_error")
    return {"status": "done", "devices": [device.to_dict() for device in devices]}


@app.post("/devices/connect", response_model=None)
async def connect_device(req: ConnectRequest) -> EndpointResponse:
    """Connect to a device over TCP/IP."""
    core: ManagerCore = app.state.core
    try:
        result = await core.pairing.connect_paired(req.host, req.port)
    except Exception as exc:
        return _failure(exc, "connect_error", host=req.host, port=req.port)
    return {
        "status": "done",
        "device_id": f"{req.host}:{req.port}",
        **result.to_dict(),
    }


@app.post("/devices/disconnect", response_model=None)
async def disconnect_device(req: DisconnectRequest) -> EndpointResponse:
    """Disconnect a TCP/IP device. Unknown targets still succeed."""
    core: ManagerCore = app.state.core
    try:
        validate_host(req.host)
        disconnected = await core.tracker.disconnect(req.host, req.port)
    except Exception as exc:
        return _failure(exc, "disconnect_error", host=req.host, port=req.port)
    return {
        "status": "done",
        "device_id": f"{req.host}:{req.port}",
        "disconnected": disconnected,
    }


# Pairing


@app.post("/pair", response_model=None)
async def pair(req: PairRequest) -> EndpointResponse:
    """Pair with a device (Android 11+ wireless debugging) and connect to it."""
    core: ManagerCore = app.state.core
    try:
        result = await core.pairing.pair(req.host, req.port, req.code)
    except Exception as exc:
        return _failure(exc, "pair_error", host=req.host, port=req.port)
    return {"status": "done", **result.to_dict()}


@app.post("/pair/connect", response_model=None)
async def pair_connect(req: ConnectRequest) -> EndpointResponse:
    """Connect to an already paired device."""
    core: ManagerCore = app.state.core
    try:
        result = await core.pairing.connect_paired(req.host, req.port)
    except Exception as exc:
        return _failure(exc, "connect_paired_error", host=req.host, port=req.port)
    return {"status": "done", **result.to_dict()}


# Discovery


@app.post("/network/scan", response_model=None)
async def scan_network() -> EndpointResponse:
    """Probe the local /24 for pairing and adb ports."""
    core: ManagerCore = app.state.core
    try:
        endpoints = await core.prober.scan_network()
    except Exception as exc:
        return _failure(exc, "scan_error")
    return {
        "status": "done",
        "devices": [endpoint.to_dict() for endpoint in endpoints],
        "count": len(endpoints),
    }


# Mirroring


@app.post("/mirror/start", response_model=None)
async def mirror_start(req: MirrorStartRequest) -> EndpointResponse:
    """Launch a scrcpy session for a device."""
    core: ManagerCore = app.state.core
    try:
        session = await core.supervisor.start_session(
            req.device_id, quality=req.quality, bitrate=req.bitrate
        )
    except Exception as exc:
        return _failure(exc, "mirror_start_error", device=req.device_id)
    return {"status": "done", "session": session.to_dict()}


@app.post("/mirror/stop", response_model=None)
async def mirror_stop(req: MirrorStopRequest) -> EndpointResponse:
    """Stop a device's scrcpy session."""
    core: ManagerCore = app.state.core
    try:
        stopped = await core.supervisor.stop_session(req.device_id)
    except Exception as exc:
        return _failure(exc, "mirror_stop_error", device=req.device_id)
    return {"status": "done", "device_id": req.device_id, "stopped": stopped}


@app.get("/mirror")
async def mirror_list() -> dict[str, Any]:
    """List running scrcpy sessions."""
    core: ManagerCore = app.state.core
    return {
        "status": "done",
        "sessions": [session.to_dict() for session in core.supervisor.list_sessions()],
    }


# Input


@app.post("/input", response_model=None)
async def send_input(req: InputRequest) -> EndpointResponse:
    """Send a button-style input action to a device."""
    core: ManagerCore = app.state.core
    try:
        await core.input.send_input(req.device_id, req.action)
    except Exception as exc:
        return _failure(exc, "input_error", device=req.device_id, action=req.action)
    return {"status": "done", "device_id": req.device_id, "action": req.action}


# Events


def _encode(event: DeviceEvent) -> str:
    return json.dumps(event.to_dict()) + "\n"


@app.get("/events")
async def events(snapshot: bool = False) -> StreamingResponse:
    """Stream device-added/removed/changed events as NDJSON.

    With ``snapshot=true`` the current live set is sent first as added events.
    """
    core: ManagerCore = app.state.core
    subscription = core.tracker.subscribe()
    initial = core.tracker.snapshot() if snapshot else []

    async def _stream() -> AsyncIterator[str]:
        try:
            for device in initial:
                yield _encode(DeviceEvent(EventKind.ADDED, device))
            async for event in subscription:
                yield _encode(event)
        finally:
            subscription.close()
            logger.debug("event_stream_closed")

    return StreamingResponse(_stream(), media_type="application/x-ndjson")
