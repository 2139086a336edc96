import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from cache import ProductCache
from config import Settings
from context import AppContext
from data_generator import generate_initial_data
from database import build_engine, build_session_factory, init_db
from geo import Geocoder
from responses import error_body
from routers import addresses, auth, categories, orders, products, reviews, shops, users

logger = logging.getLogger(__name__)


# --- Lifespan Management for DB and Redis ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info("Application startup: Initializing database and Redis...")

    engine = build_engine(settings)
    await init_db(engine, force=settings.db_force_sync, alter=settings.db_alter_sync)
    session_factory = build_session_factory(engine)
    cache = await ProductCache.connect(settings.redis_url)
    geocoder = Geocoder(settings.geocoding_api_key)
    if not geocoder.enabled:
        logger.info("GEOCODING_API_KEY not set; addresses are saved without coordinates unless supplied.")

    for subdir in ("products", "shops"):
        os.makedirs(os.path.join(settings.upload_dir, subdir), exist_ok=True)

    app.state.context = AppContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        cache=cache,
        geocoder=geocoder,
    )

    if settings.seed_initial_data:
        await generate_initial_data(session_factory)

    yield  # Application is running

    # Cleanup on shutdown
    await cache.close()
    await engine.dispose()
    logger.info("Database engine disposed.")
    logger.info("Application shutdown complete.")


# --- Error Envelope ---
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == 404 and message == "Not Found":
        message = "Resource not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(message)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part not in ("body", "query", "path")),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("Validation error", errors))


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(status_code=409, content=error_body("Unique constraint error"))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content=error_body("Internal server error"))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(
        title="Grocery Delivery Marketplace API",
        description="Marketplace API connecting grocery buyers with nearby shops.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # --- CORS Middleware ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    for module in (auth, users, shops, products, categories, addresses, reviews, orders):
        app.include_router(module.router)

    # Uploaded images; the directory is created on startup
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")

    @app.get("/", tags=["Health"])
    async def root():
        return {"message": "Welcome to the grocery delivery API."}

    # --- Health Check Endpoint ---
    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Performs a health check on the API and its dependencies (Database, Redis).
        """
        context: AppContext = request.app.state.context
        db_ok = False
        try:
            async with context.session_factory() as session:
                await session.execute(text("SELECT 1"))
            db_ok = True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")

        if context.cache.enabled:
            try:
                redis_status = "ok" if await context.cache.ping() else "error"
            except Exception as e:
                logger.error(f"Redis health check failed: {e}")
                redis_status = "error"
        else:
            redis_status = "disabled"

        body = {
            "status": "healthy" if db_ok and redis_status != "error" else "unhealthy",
            "database": "ok" if db_ok else "error",
            "redis": redis_status,
        }
        return JSONResponse(status_code=200 if body["status"] == "healthy" else 503, content=body)

    return app


app = create_app()


if __name__ == "__main__":
    # For production, use Uvicorn: uvicorn main:app --host 0.0.0.0 --port 5000
    import uvicorn
    logger.info("Starting application with Uvicorn...")
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
