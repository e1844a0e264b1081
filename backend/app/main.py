from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging import bind_request_context, get_logger
import app.models  # noqa: F401  # force model registration

from app.api.v1.auth import router as auth_router
from app.api.v1.navigation import router as navigation_router
from app.api.v1.tenants import router as tenants_router
from app.api.v1.users import router as users_router
from app.auth.permissions import PermissionEngine, load_permission_matrix
from app.core.errors import AppError
from app.db.session import init_models

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        await init_models()
    logger.info("startup", environment=settings.ENVIRONMENT)
    yield


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(
            "request_failed",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.code,
        )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": jsonable_encoder(exc.to_detail())},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        # Malformed bodies are a 400 here, not FastAPI's default 422
        return JSONResponse(
            status_code=400,
            content={
                "detail": {
                    "code": "invalid_input",
                    "message": "Request validation failed",
                    "errors": jsonable_encoder(exc.errors(), exclude={"input", "ctx"}),
                }
            },
        )


def create_application() -> FastAPI:
    app = FastAPI(title="Martly API", lifespan=lifespan)

    # Loaded once; immutable for the life of the process
    app.state.permission_engine = PermissionEngine(load_permission_matrix(settings.PERMISSION_MATRIX_PATH))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        rid = bind_request_context(request.headers.get("X-Request-Id"))
        response = await call_next(request)
        response.headers["X-Request-Id"] = rid
        return response

    register_exception_handlers(app)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "martly"}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(tenants_router, prefix="/api/v1")
    app.include_router(users_router, prefix="/api/v1")
    app.include_router(navigation_router, prefix="/api/v1")

    return app


app = create_application()
