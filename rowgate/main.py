import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from rowgate.core.config import settings
from rowgate.core.database import engine
from rowgate.core.errors import GatewayError
from rowgate.api.router import api_router
from rowgate.api.endpoints.gateway import nack_from_error

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# Close the engine once everything is done and close all the connections
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.SERVICE_ID} {settings.SERVICE_VERSION} starting ({settings.INSTANCE_ID})")
    yield
    await engine.dispose()


app = FastAPI(title="rowgate", version=settings.SERVICE_VERSION, lifespan=lifespan)

# Include the master router containing all our endpoints
app.include_router(api_router)


# Errors raised before dispatch (auth) still answer with a nack envelope
@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    return nack_from_error(exc)
