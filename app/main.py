import logging
import os
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import models  # noqa: F401 - register tables with Base
from .config import FRONTEND_URL
from .database import Base, engine
from .domain.billing.errors import BillingError
from .domain.billing.router import router as billing_router
from .domain.billing.webhooks import webhooks_router
from .domain.pricing.router import router as pricing_router
from .rate_limiter import get_redis_client

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("stripe").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Billing API starting")
    try:
        # Also creates the partial unique indexes on payments and user_memberships
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("✅ Billing tables ready")
    except SQLAlchemyError as e:
        # Several uvicorn workers may race on the same DDL
        if "already exists" in str(e) or "duplicate key" in str(e):
            logger.info("Billing tables already created by another worker")
        else:
            logger.error(f"❌ Failed to create billing tables: {e}")

    try:
        get_redis_client()
        logger.info("✅ Redis reachable for rate limiting")
    except redis.RedisError as e:
        logger.warning(f"⚠️ Redis unreachable, sync endpoints will not be rate limited: {e}")

    yield
    logger.info("Billing API shutting down")


app = FastAPI(title="HITS Billing API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(BillingError)
async def billing_exception_handler(request: Request, exc: BillingError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} - {exc.code}: {exc.message}")
    else:
        logger.warning(f"⚠️ {request.method} {request.url.path} - {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


# CORS Configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:3000").split(",")
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Routes
app.include_router(pricing_router)
app.include_router(billing_router)
app.include_router(webhooks_router)


@app.get("/")
def root():
    return {"message": "HITS Billing API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
