"""FastAPI application setup for Readmark."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from readmark.api import dependencies as deps
from readmark.api.routes_admin import router as admin_router
from readmark.api.routes_library import router as library_router
from readmark.api.routes_search import router as search_router
from readmark.core.errors import (
    AuthenticationError,
    AuthorizationError,
    CorpusReadError,
    ValidationError,
)
from readmark.core.logging import configure_logging, get_logger

_settings = deps.get_app_settings()
configure_logging(_settings.log_level, use_json=_settings.log_json)
logger = get_logger(__name__)

app = FastAPI(
    title="Readmark",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(search_router, prefix="", tags=["search"])
app.include_router(library_router, prefix="", tags=["library"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    logger.debug("Validation failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(AuthenticationError)
async def handle_authentication_error(request: Request, exc: AuthenticationError) -> JSONResponse:
    logger.debug("Authentication failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=401, content={"detail": "Unauthorized"})


@app.exception_handler(AuthorizationError)
async def handle_authorization_error(request: Request, exc: AuthorizationError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(CorpusReadError)
async def handle_corpus_error(request: Request, exc: CorpusReadError) -> JSONResponse:
    logger.error("Corpus read failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    deps.get_app_settings()
    deps.get_database()
    deps.get_embedding_provider()
    deps.get_search_service()


@app.on_event("shutdown")
async def shutdown() -> None:
    """Flush background history writes before the process exits."""
    if deps._SEARCH_SERVICE is not None:
        await deps._SEARCH_SERVICE.drain()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
