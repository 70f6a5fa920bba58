import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from epicflow.api.router import api_router
from epicflow.core.context import AppContext, build_context
from epicflow.core.logging import configure_logging

logger = logging.getLogger(__name__)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "errors": errors},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.context.close()


def create_app(context: AppContext | None = None) -> FastAPI:
    context = context or build_context()
    configure_logging(context.settings.log_level)

    app = FastAPI(title=context.settings.app_name, version="0.1.0", lifespan=lifespan)
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=context.settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(api_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    logger.info("%s ready (%s)", context.settings.app_name, context.settings.app_env)
    return app


def run() -> None:
    uvicorn.run("epicflow.main:create_app", factory=True, host="0.0.0.0", port=8000)
