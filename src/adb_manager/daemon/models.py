"""Pydantic request models for daemon endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from adb_manager.config import DEFAULT_PAIRING_PORT, DEFAULT_SERVICE_PORT


class ConnectRequest(BaseModel):
    host: str
    port: int = Field(default=DEFAULT_SERVICE_PORT, ge=1, le=65535)


class DisconnectRequest(BaseModel):
    host: str
    port: int = Field(default=DEFAULT_SERVICE_PORT, ge=1, le=65535)


class PairRequest(BaseModel):
    host: str
    port: int = Field(default=DEFAULT_PAIRING_PORT, ge=1, le=65535)
    code: str  # Never logged


class MirrorStartRequest(BaseModel):
    device_id: str
    quality: str | None = None
    bitrate: int | None = Field(default=None, gt=0)


class MirrorStopRequest(BaseModel):
    device_id: str


class InputRequest(BaseModel):
    device_id: str
    action: str
