import logging
import traceback
import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from tales.core.config import Settings, get_settings, settings as default_settings
from tales.core.logging_config import setup_logging
from tales.db.store import EntitlementStore, build_store
from tales.routers import health, narration, payments, projects, public_tales, reactions

setup_logging()
logger = logging.getLogger("tales.api")


def _startup_config(settings: Settings) -> dict:
    """Config status for the startup log (no secrets)."""
    return {
        "APP_ENV": settings.app_env,
        "DATABASE_URL_set": bool(settings.database_url),
        "APP_BASE_URL": settings.app_base_url,
        "PAYSTACK_SECRET_KEY_set": bool(settings.paystack_secret_key.strip()),
        "CURRENCY": settings.currency,
        "DISCOUNT_CODES": sorted(settings.discount_limits()),
        "ELEVENLABS_API_KEY_set": bool(settings.elevenlabs_api_key.strip()),
        "AZURE_STORAGE_ACCOUNT": settings.azure_storage_account or "(empty)",
        "AZURE_STORAGE_ACCOUNT_KEY_set": bool(settings.azure_storage_account_key),
        "CORS_ALLOW_ORIGINS": settings.cors_allow_origins[:80] + ("..." if len(settings.cors_allow_origins) > 80 else ""),
    }


def create_app(settings: Settings | None = None, store: EntitlementStore | None = None) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(title="Tales API", version="0.1.0")
    app.state.store = store if store is not None else build_store(settings)
    if settings is not default_settings:
        app.dependency_overrides[get_settings] = lambda: settings

    @app.on_event("startup")
    def startup_log_config():
        logger.info("Tales API starting up")
        logger.info("Tales API startup config: %s", _startup_config(settings))

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every request and response for troubleshooting."""
        rid = f"{id(request):x}"
        path = request.url.path
        method = request.method
        start = time.perf_counter()
        logger.info("[%s] -> %s %s", rid, method, path)
        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - start) * 1000
            status = response.status_code
            level = logging.WARNING if status >= 400 else logging.INFO
            logger.log(level, "[%s] <- %s %s %d %.0fms", rid, method, path, status, elapsed_ms)
            return response
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.exception("[%s] ERROR %s %s after %.0fms: %s", rid, method, path, elapsed_ms, e)
            raise

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions, log full traceback, return 500."""
        logger.exception(
            "Unhandled exception %s %s: %s\n%s",
            request.method,
            request.url.path,
            exc,
            traceback.format_exc(),
        )
        production = settings.app_env == "production"
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error." if production else str(exc),
                "type": type(exc).__name__,
                "_traceback": None if production else traceback.format_exc(),
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(health.router)
    app.include_router(projects.router)
    app.include_router(public_tales.router)
    app.include_router(payments.router)
    app.include_router(narration.router)
    app.include_router(reactions.router)
    return app


app = create_app()
