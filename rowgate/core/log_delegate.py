import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import BackgroundTasks

from rowgate.core.config import Settings

logger = logging.getLogger(__name__)


def build_log_body(
    request_id: str, level: int, message: str, settings: Settings
) -> Dict[str, Any]:
    return {
        "version": "v1",
        "request_id": request_id,
        "service": "log",
        "action": "append",
        "payload": {
            "service": settings.SERVICE_ID,
            "instance": settings.INSTANCE_ID,
            "level": level,
            "message": message,
        },
    }


async def post_log_to_gateway(
    request_id: str,
    level: int,
    message: str,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """
    Forward one message to the log-collection service.

    Best effort: failures are logged locally and never raised.

    Returns:
        True when the service answered with a 2xx status.
    """
    if not settings.LOG_SERVICE_URL:
        return False

    body = build_log_body(request_id, level, message, settings)
    headers = {"Authorization": f"Bearer {settings.LOG_SERVICE_TOKEN}"}

    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            response = await client.post(settings.LOG_SERVICE_URL, json=body, headers=headers)
            response.raise_for_status()
        logger.debug(f"Log service response: {response.text}")
        return True
    except (httpx.HTTPError, httpx.InvalidURL) as error:
        logger.error(f"Error posting log: {error}")
        return False


class ErrorDelegate:
    """
    Per-request reporter.

    Messages go to the local logger right away; forwarding to the log
    service is queued on the request's background tasks so it runs after
    the response is sent.
    """

    def __init__(
        self,
        settings: Settings,
        background_tasks: Optional[BackgroundTasks] = None,
        request_id: str = "unknown",
    ):
        self.settings = settings
        self.background_tasks = background_tasks
        self.request_id = request_id
        self.messages = []

    def report(self, message: str):
        logger.error(f"[{self.request_id}] {message}")
        self._forward(f"❌ *Error*\n{message}")

    def warn(self, message: str):
        logger.warning(f"[{self.request_id}] {message}")
        self._forward(f"⚠️ *Warning*\n{message}")

    def _forward(self, text: str):
        self.messages.append(text)
        if self.background_tasks is None or not self.settings.LOG_SERVICE_URL:
            return
        self.background_tasks.add_task(
            post_log_to_gateway,
            self.request_id,
            self.settings.LOG_FORWARD_LEVEL,
            text,
            self.settings,
        )
