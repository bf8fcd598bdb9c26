"""
Error taxonomy for the gateway.

Every error carries a stable ``code`` that ends up in the nack envelope, so
callers can branch on it without parsing messages.

    AuthError               UNAUTHORIZED    missing/non-bearer Authorization header
    InvalidTokenError       INVALID_TOKEN   bearer token does not match
    MalformedRequestError   INVALID_FIELD   bad envelope (INVALID_JSON for bad bodies)
    PayloadValidationError  REQUEST_FAILED  disallowed column/option, bad values
    NotFoundError           REQUEST_FAILED  update touched zero rows
    UnknownActionError      REQUEST_FAILED  action name not registered
    StoreError              DB_ERROR        the store raised while executing
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for every failure that is reported as a nack."""

    code = "REQUEST_FAILED"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.request_id = request_id


class AuthError(GatewayError):
    code = "UNAUTHORIZED"


class InvalidTokenError(AuthError):
    code = "INVALID_TOKEN"


class MalformedRequestError(GatewayError):
    code = "INVALID_FIELD"


class PayloadValidationError(GatewayError):
    pass


class NotFoundError(GatewayError):
    pass


class UnknownActionError(GatewayError):
    pass


class StoreError(GatewayError):
    code = "DB_ERROR"
