from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from pawa_shared.db.models import Base

from flex_rental.api.errors import register_exception_handlers
from flex_rental.api.v1 import health, points, rentals
from flex_rental.clients.auth import AuthClient
from flex_rental.clients.payment_gateway import PaymentGatewayClient
from flex_rental.config.logging import setup_logging
from flex_rental.config.settings import Settings
from flex_rental.db.database import get_sessionmaker
from flex_rental.monitoring.metrics import init_app_info, setup_instrumentator

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting flex-rental service")

    settings = Settings()
    sessionmaker = get_sessionmaker(settings)
    app.state.sessionmaker = sessionmaker
    app.state.payment_gateway = PaymentGatewayClient(settings)
    app.state.auth_client = AuthClient(settings)

    if settings.auto_create_schema:
        logger.info("Creating database schema")
        Base.metadata.create_all(bind=sessionmaker.kw["bind"])

    if not app.state.payment_gateway.is_configured:
        logger.warning("Payment gateway secret key is not set; rentals will be rejected")

    yield

    sessionmaker.kw["bind"].dispose()
    logger.info("Shutting down flex-rental service")


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title="Flex Rental Service",
        description="Power bank rental lifecycle and billing",
        version=VERSION,
        lifespan=lifespan,
    )

    instrumentator = setup_instrumentator()
    instrumentator.instrument(app).expose(app)

    init_app_info(VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(rentals.router, prefix="/api/v1", tags=["rentals"])
    app.include_router(points.router, prefix="/api/v1", tags=["points"])

    return app


def main():
    import uvicorn

    uvicorn.run(
        "flex_rental.main:app",
        host="0.0.0.0",
        port=8000,
        log_config=None,
    )


app = create_app()


if __name__ == "__main__":
    main()
