import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from backend import ChatBackend, MemoryBackend
from constants import BCRYPT_ROUNDS, CORS_ORIGINS, LOG_FILE, LOG_LEVEL, SWEEP_INTERVAL_SECONDS, UPLOAD_DIR, UPLOAD_MAX_BYTES
from credentials import CredentialMatcher
from exceptions import ChatError
from logging_config import get_logger, setup_logging
from routers.rooms import rooms_router
from routers.uploads import UPLOADS_URL_PREFIX, uploads_router
from schemas.rooms import HealthResponse
from sweeper import ExpirySweeper

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    error = errors[0]
    message = str(error.get("msg", "Invalid request"))
    if error.get("type") == "value_error":
        return message.removeprefix("Value error, ")
    field = error.get("loc", ())[-1] if error.get("loc") else None
    return f"{field}: {message}" if field and field != "body" else message


def create_app(
    backend: Optional[ChatBackend] = None,
    bcrypt_rounds: int = BCRYPT_ROUNDS,
    sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    upload_dir: str = UPLOAD_DIR,
    upload_max_bytes: int = UPLOAD_MAX_BYTES,
) -> FastAPI:
    """Build the app around one backend shared by the routes and the sweeper."""
    backend = backend or MemoryBackend()
    sweeper = ExpirySweeper(backend, interval=sweep_interval)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        os.makedirs(upload_dir, exist_ok=True)
        sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()

    app = FastAPI(title="EphemeralRooms", lifespan=lifespan)

    app.state.backend = backend
    app.state.matcher = CredentialMatcher(backend, bcrypt_rounds=bcrypt_rounds)
    app.state.sweeper = sweeper
    app.state.upload_dir = upload_dir
    app.state.upload_max_bytes = upload_max_bytes

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        logger.warning(f"Rejected {request.method} {request.url.path}: {message}")
        return JSONResponse(status_code=400, content={"detail": message})

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="ok", rooms=backend.count_live_rooms())

    app.include_router(rooms_router)
    app.include_router(uploads_router)

    # the directory is created on startup, not at import
    app.mount(UPLOADS_URL_PREFIX, StaticFiles(directory=upload_dir, check_dir=False), name="uploads")

    logger.info("FastAPI application initialized")
    return app


app = create_app()
