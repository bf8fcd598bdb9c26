from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


UNKNOWN_REQUEST_ID = "unknown"


# =========================
# Enums
# =========================
class EnvelopeType(str, Enum):
    ACK = "ack"
    NACK = "nack"


class ErrorCode(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_JSON = "INVALID_JSON"
    INVALID_FIELD = "INVALID_FIELD"
    REQUEST_FAILED = "REQUEST_FAILED"
    DB_ERROR = "DB_ERROR"


# =========================
# REQUEST
# =========================
class ApiRequest(BaseModel):
    request_id: Optional[str] = None
    action: str = ""
    payload: Dict[str, Any]

    model_config = ConfigDict(extra="ignore")


# =========================
# RESPONSE
# =========================
class ErrorPayload(BaseModel):
    status: str = "error"
    code: str
    message: str


class AckEnvelope(BaseModel):
    type: EnvelopeType = EnvelopeType.ACK
    request_id: str = UNKNOWN_REQUEST_ID
    payload: Dict[str, Any] = Field(default_factory=dict)


class NackEnvelope(BaseModel):
    type: EnvelopeType = EnvelopeType.NACK
    request_id: str = UNKNOWN_REQUEST_ID
    payload: ErrorPayload


class MetaResponse(BaseModel):
    service: str
    version: str
    instance: str
