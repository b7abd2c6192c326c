import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from core.observability import configure_observability


# Must run before FastAPI is imported so requests are instrumented
configure_observability()

from fastapi import FastAPI  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html  # noqa: E402
from starlette.exceptions import HTTPException as StarletteHTTPException  # noqa: E402

from api.v1.api import api_router  # noqa: E402
from core.config import get_settings  # noqa: E402
from core.error_handler import (  # noqa: E402
    ExceptionNormalizationMiddleware,
    global_exception_handler,
    setup_logging,
)
from core.exceptions import DomainError  # noqa: E402
from core.middleware import CorrelationIdMiddleware  # noqa: E402
from dependencies.db import create_tables  # noqa: E402
from services.ai.backend import PydanticAIBackend  # noqa: E402
from services.ai.model_factory import get_outline_model, get_slides_model  # noqa: E402


setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    if settings.DB_CREATE_TABLES:
        await create_tables()

    # One backend per role, shared by every request
    try:
        app.state.slides_backend = PydanticAIBackend(get_slides_model(settings=settings))
        app.state.outline_backend = PydanticAIBackend(
            get_outline_model(settings=settings)
        )
    except ValueError as exc:
        logger.warning("Model backends unavailable, streaming disabled: %s", exc)
        app.state.slides_backend = None
        app.state.outline_backend = None
    yield


app = FastAPI(
    title="DeckStream API",
    description="Incremental slide-deck generation with streaming updates",
    version="0.1.0",
    docs_url=None,  # We'll mount docs under /api/v1/docs
    redoc_url=None,
    lifespan=lifespan,
)

settings = get_settings()

# Last added runs first: the correlation id is set before errors are normalized
app.add_middleware(ExceptionNormalizationMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

app.add_exception_handler(StarletteHTTPException, global_exception_handler)
app.add_exception_handler(RequestValidationError, global_exception_handler)
app.add_exception_handler(DomainError, global_exception_handler)

# Include API routes
app.include_router(api_router, prefix="/api/v1")


# Mount OpenAPI docs under /api/v1/docs and /api/v1/redoc
@app.get("/api/v1/docs", include_in_schema=False)
def custom_swagger_ui_html():
    return get_swagger_ui_html(openapi_url="/openapi.json", title="DeckStream API Docs")


@app.get("/api/v1/redoc", include_in_schema=False)
def redoc_html():
    return get_redoc_html(openapi_url="/openapi.json", title="DeckStream API Redoc")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
