from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from learnmap.api.middleware.rate_limit import RateLimitMiddleware
from learnmap.api.v1.api_router import v1_router
from learnmap.api.v1.errors import register_exception_handlers
from learnmap.core.observability.correlation import CorrelationMiddleware
from learnmap.core.observability.logger_config import configure_structlog
from learnmap.core.settings import settings
from learnmap.infrastructure.container import AppContainer

# Configure Structlog (JSON Logging)
configure_structlog(settings.LOG_LEVEL)
logger = structlog.get_logger(__name__)
logger.info(
    "runtime_mode",
    environment=settings.ENVIRONMENT,
    base_path=settings.BASE_PATH,
    map_store=settings.MAP_STORE,
    gemini_model=settings.GEMINI_MODEL,
    gemini_key_configured=bool(str(settings.GEMINI_API_KEY or "").strip()),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = AppContainer.get_instance()
    app.state.container = container
    await container.startup()
    try:
        yield
    finally:
        await container.shutdown()


app = FastAPI(
    title="Learning Map API",
    description="Generates hierarchical learning maps with Gemini and stores them for later retrieval.",
    version="1.0.0",
    lifespan=lifespan,
)


# Register Middleware (Stack order: Last added runs FIRST)

# 3. Rate limiting (Inner, disabled unless RATE_LIMIT_ENABLED)
app.add_middleware(
    RateLimitMiddleware,
    enabled=settings.RATE_LIMIT_ENABLED,
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
    trust_forwarded=settings.RATE_LIMIT_TRUST_PROXY,
)

# 2. CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 1. Correlation Middleware (Outer) - Generates/Extracts Request ID
app.add_middleware(CorrelationMiddleware)

register_exception_handlers(app)

# Include Modular Routers
app.include_router(v1_router)


@app.get("/", response_class=PlainTextResponse)
def hello():
    return "Hello, World!"


@app.get("/health")
def health_check():
    """
    Service health check.
    """
    return {"status": "ok", "service": "learnmap", "api_v1": "available"}


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.API_PORT)


if __name__ == "__main__":
    run()
