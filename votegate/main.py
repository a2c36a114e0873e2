from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from votegate.api.routes import auth, faces, health, tokens, votes
from votegate.core.config import get_settings
from votegate.db.session import init_db
from votegate.exceptions import InvalidEmbeddingFormat, StorageError
from votegate.logger import configure_logging

settings = get_settings()
configure_logging(settings.log_dir, level=settings.log_level, json_output=settings.log_json)
logger = logging.getLogger("votegate.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database ready at %s", settings.database_url.split("@")[-1])
    yield


app = FastAPI(title=settings.app_name, version="1.0.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix)
app.include_router(auth.router, prefix=settings.api_prefix)
app.include_router(faces.router, prefix=settings.api_prefix)
app.include_router(tokens.router, prefix=settings.api_prefix)
app.include_router(votes.router, prefix=settings.api_prefix)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "message": "Missing or invalid fields",
            "errors": [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()],
        },
    )


@app.exception_handler(InvalidEmbeddingFormat)
async def embedding_error_handler(request: Request, exc: InvalidEmbeddingFormat) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": "Server error"})
