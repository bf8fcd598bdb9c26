import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from rowgate.core import schemas
from rowgate.core.config import settings
from rowgate.core.database import Store, get_store
from rowgate.core.dispatcher import RequestContext, dispatch
from rowgate.core.errors import GatewayError, MalformedRequestError
from rowgate.core.log_delegate import ErrorDelegate
from rowgate.core.security import require_write_token

router = APIRouter(tags=["Gateway"])

store_dep = Annotated[Store, Depends(get_store)]
token_dep = Annotated[str, Depends(require_write_token)]


# ---------- HELPERS ----------
def ack(request_id: str, payload: Optional[Dict[str, Any]] = None) -> JSONResponse:
    envelope = schemas.AckEnvelope(request_id=request_id, payload=payload or {})
    return JSONResponse(envelope.model_dump(mode="json"), status_code=status.HTTP_200_OK)


def nack(request_id: str, code: str, message: str) -> JSONResponse:
    envelope = schemas.NackEnvelope(
        request_id=request_id,
        payload=schemas.ErrorPayload(code=code, message=message),
    )
    return JSONResponse(
        envelope.model_dump(mode="json"), status_code=status.HTTP_400_BAD_REQUEST
    )


def nack_from_error(error: GatewayError) -> JSONResponse:
    return nack(error.request_id or schemas.UNKNOWN_REQUEST_ID, error.code, error.message)


async def read_envelope(request: Request) -> schemas.ApiRequest:
    """Parse the JSON body into an ApiRequest or raise a MalformedRequestError."""
    try:
        body = await request.json()
    except ValueError:
        raise MalformedRequestError("Malformed JSON body", code=schemas.ErrorCode.INVALID_JSON.value)

    if not isinstance(body, dict):
        raise MalformedRequestError(
            "Request body must be a JSON object", code=schemas.ErrorCode.INVALID_JSON.value
        )

    request_id = body.get("request_id")
    if not isinstance(request_id, str) or not request_id:
        request_id = schemas.UNKNOWN_REQUEST_ID

    if not isinstance(body.get("payload"), dict):
        raise MalformedRequestError("Missing required field: payload", request_id=request_id)

    try:
        envelope = schemas.ApiRequest.model_validate({**body, "request_id": request_id})
    except ValidationError as error:
        raise MalformedRequestError(
            f"Invalid request envelope: {error.errors()[0]['msg']}", request_id=request_id
        )
    return envelope


@router.post("/api")
async def handle_api(
    request: Request,
    background_tasks: BackgroundTasks,
    store: store_dep,
    token: token_dep,
):
    """
    Single entry point: authenticate, parse the envelope, dispatch the
    action and wrap the outcome in an ack/nack envelope.
    """
    try:
        envelope = await read_envelope(request)
    except MalformedRequestError as error:
        return nack_from_error(error)

    delegate = ErrorDelegate(settings, background_tasks, request_id=envelope.request_id)
    ctx = RequestContext(
        store=store,
        delegate=delegate,
        settings=settings,
        request_id=envelope.request_id,
    )

    result = await dispatch(envelope.action, envelope.payload, ctx)
    if result.ok:
        return ack(envelope.request_id, result.payload)

    logging.info(f"Request {envelope.request_id} rejected with {result.error.code}")
    return nack_from_error(result.error)


@router.post("/meta", response_model=schemas.MetaResponse)
async def meta():
    return schemas.MetaResponse(
        service=settings.SERVICE_ID,
        version=settings.SERVICE_VERSION,
        instance=settings.INSTANCE_ID,
    )
