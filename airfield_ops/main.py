import structlog
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .config import settings
from .db import SessionLocal, init_db
from .logging import setup_logging, RequestIdMiddleware
from .auth.router import router as auth_router
from .routes.dashboard import router as dashboard_router
from .routes.functions import FunctionError, router as functions_router
from .routes.handover import router as handover_router
from .routes.maintenance import router as maintenance_router
from .routes.reference import router as reference_router
from .routes.reports import router as reports_router
from .routes.users import router as users_router, storage_router
from .services.reference_data import seed_reference_data


logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    @app.exception_handler(FunctionError)
    async def _function_error(request: Request, exc: FunctionError):
        logger.warning("function_error", path=request.url.path, status=exc.status_code, error=exc.error)
        return JSONResponse({"success": False, "error": exc.error}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        if request.url.path.startswith(functions_router.prefix):
            return JSONResponse({"success": False, "error": "Invalid request format"}, status_code=400)
        return await request_validation_exception_handler(request, exc)

    # Routers
    app.include_router(auth_router)
    app.include_router(functions_router)
    app.include_router(maintenance_router)
    app.include_router(handover_router)
    app.include_router(reference_router)
    app.include_router(users_router)
    app.include_router(storage_router)
    app.include_router(reports_router)
    app.include_router(dashboard_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        if settings.auto_create_db:
            logger.info("startup_create_tables")
            init_db()
        if settings.seed_reference_data:
            db = SessionLocal()
            try:
                seed_reference_data(db)
            finally:
                db.close()

    return app


app = create_app()
