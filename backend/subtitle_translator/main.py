"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from subtitle_translator.api.v1.routes import llm_settings, translation
from subtitle_translator.config import configure_logging, settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup: one client shared by every request to the LLM endpoint
    app.state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.llm_request_timeout),
        limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
    )
    logger.info(f"{settings.app_name} started; default endpoint {settings.llm_endpoint}")

    yield

    # Shutdown
    await app.state.http_client.aclose()


app = FastAPI(
    title=settings.app_name,
    description="Subtitle translation with OpenAI- and Anthropic-compatible LLMs",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(translation.router, prefix="/api/v1", tags=["translation"])
app.include_router(llm_settings.router, prefix="/api/v1", tags=["settings"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Subtitle Translator API", "version": "0.1.0"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def run() -> None:
    """Console entry point."""
    import uvicorn

    configure_logging()
    uvicorn.run(app, host=settings.host, port=settings.port)
