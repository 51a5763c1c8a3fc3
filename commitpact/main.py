from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from commitpact.config import settings
from commitpact.logging_setup import configure_logging
from commitpact.services.errors import SettlementError
from commitpact.routes.system import router as system_router
from commitpact.routes.challenges import router as challenges_router
from commitpact.routes.proofs import router as proofs_router
from commitpact.routes.settlement import router as settlement_router
from commitpact.routes.wallet import router as wallet_router
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha)
    yield
    # Shutdown
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} settlement engine for staked commitment pacts",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

async def settlement_error_handler(request: Request, exc: SettlementError):
    if exc.status_code >= 500:
        log.critical("request_failed", code=exc.code, error=exc.message, path=request.url.path)
    else:
        log.info("request_rejected", code=exc.code, error=exc.message, path=request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "state": exc.state},
    )

app.add_exception_handler(SettlementError, settlement_error_handler)

# Include routers
app.include_router(system_router)
app.include_router(challenges_router)
app.include_router(proofs_router)
app.include_router(settlement_router)
app.include_router(wallet_router)

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    structlog.contextvars.clear_contextvars()
    return response
