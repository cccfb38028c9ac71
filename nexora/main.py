from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .config import get_settings
from .db import lifespan_db
from .redis_client import redis
from .domain.errors import NexoraError
from .api.routers import health as health_router
from .api.routers import auth as auth_router
from .api.routers import metrics as metrics_router
from .observability.logging import setup_logging
from .middleware.request_context import RequestContextMiddleware
from .observability.metrics import MetricsHTTPMiddleware
import uvicorn

settings = get_settings()
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with lifespan_db(app):
        try:
            yield
        finally:
            await redis.aclose()


async def _nexora_error(_: Request, exc: NexoraError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def _bad_body(_: Request, exc: RequestValidationError) -> JSONResponse:
    # malformed JSON / wrong types are client errors like any missing field
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "Invalid request body"})


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[settings.REQUEST_ID_HEADER],
    )

    # then your custom middlewares
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(MetricsHTTPMiddleware)

    app.add_exception_handler(NexoraError, _nexora_error)
    app.add_exception_handler(RequestValidationError, _bad_body)

    @app.get("/", include_in_schema=False)
    async def root():
        return {"message": "NEXORA Server Run Successfully!"}

    app.include_router(health_router.router)
    app.include_router(auth_router.router)
    app.include_router(metrics_router.router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("nexora.main:app", host=settings.APP_HOST, port=settings.APP_PORT, reload=settings.DEBUG)
