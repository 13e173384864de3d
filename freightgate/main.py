import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError

# Load env from the package directory before settings are read
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

from freightgate.core.config import settings, validate_config
from freightgate.core.logging import configure_logging
from freightgate.core.middleware.request_id import RequestIdMiddleware
from freightgate.core.database import create_all_tables, dispose_engine
from freightgate.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from freightgate.api import access, health, plans
from freightgate.features.plans.service import seed_plans

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("freightgate")
    logger.info("Starting freightgate...")
    if settings.SEED_PLANS_ON_STARTUP:
        try:
            create_all_tables()
            seed_plans()
        except (SQLAlchemyError, ValueError) as exc:
            # Serve anyway; /readyz reports the missing schema
            logger.error("startup.seed_failed", extra={"error_message": str(exc)})
    try:
        yield
    finally:
        dispose_engine()
        logging.getLogger("freightgate").info("Stopping freightgate...")


app = FastAPI(title="freightgate - subscription access control", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ALLOWED_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(access.router)
app.include_router(plans.router)
app.include_router(health.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("freightgate.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
