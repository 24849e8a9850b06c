"""
Cashu POS Backend - FastAPI Application

Point-of-sale gateway issuing NUT-18 payment requests and confirming
settlement once matching ecash has been received.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.quotes import router as quotes_router
from .config import Settings, config_file_path, ensure_example_config, get_settings
from .db.init_db import create_engine
from .db.quote_store import QuoteStore
from .db.settlement_store import SettlementStore
from .exceptions import InternalError, InvalidPaymentPayloadError, PosError
from .models.quotes import ALLOWED_UNITS
from .services.quote_service import QuoteService
from .services.reconciler import ReconcileScheduler, SettlementReconciler
from .services.validation import normalize_mint_url
from .wallets.base import WalletRegistry

logger = logging.getLogger(__name__)

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    # Keep library chatter out of debug output
    for noisy in ("sqlalchemy.engine", "aiosqlite", "httpx", "apscheduler.executors"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


async def build_wallets(settings: Settings) -> WalletRegistry:
    """One wallet per accepted mint and unit: demo wallets or Nutshell wallets."""
    mints = [normalize_mint_url(mint) for mint in settings.pos.accepted_mints]
    if settings.demo_mode:
        from .mocks.demo_wallet import build_demo_registry

        logger.warning("Demo mode: proofs are accepted without contacting a mint")
        registry = build_demo_registry(mints, ALLOWED_UNITS)
    else:
        from .wallets.nutshell import build_nutshell_registry

        registry = await build_nutshell_registry(
            mints,
            ALLOWED_UNITS,
            settings.work_dir.expanduser() / "wallet",
        )

    logger.info(f"Wallets ready: {len(registry)}")
    return registry


def create_app(
    settings: Optional[Settings] = None,
    quote_service: Optional[QuoteService] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    With `quote_service` given the app uses it as-is and the lifespan does no
    bootstrapping; otherwise storage, wallets and the reconciler are set up
    from `settings` at startup.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "quote_service", None) is not None:
            yield
            return

        logger.info("Starting Cashu POS server...")
        logger.info(f"Accepted mints: {settings.pos.accepted_mints}")

        engine = create_engine(settings.resolved_database_path)
        store = QuoteStore(engine)
        settlements = SettlementStore(engine)
        try:
            await store.create()
            await settlements.create()
            logger.info("Database initialized successfully")

            service = QuoteService(
                store=store,
                settlements=settlements,
                wallets=await build_wallets(settings),
                accepted_mints=settings.pos.accepted_mints,
                payment_url=settings.pos.payment_url,
            )

            reconciler = SettlementReconciler(
                service,
                settlements,
                pending_grace_seconds=settings.pending_settlement_grace_seconds,
            )
            # Repair anything left over from a previous run before taking traffic
            await reconciler.run_once()
        except Exception as e:
            logger.error(f"Startup failed: {e}")
            await engine.dispose()
            raise

        scheduler = ReconcileScheduler(reconciler, settings.settlement_retry_interval_seconds)
        scheduler.start()

        app.state.quote_service = service
        logger.info("Server startup complete")

        yield

        logger.info("Shutting down Cashu POS server...")
        scheduler.shutdown(wait=True)
        await engine.dispose()
        app.state.quote_service = None

    app = FastAPI(
        title="Cashu POS API",
        description="Point-of-sale gateway for Cashu ecash payments",
        version=__version__,
        lifespan=lifespan,
    )
    if quote_service is not None:
        app.state.quote_service = quote_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    @app.exception_handler(PosError)
    async def pos_error_handler(request: Request, exc: PosError):
        """
        Map POS errors onto their HTTP status.

        Storage, upstream and internal errors are logged in full and returned
        with a fixed summary only.
        """
        if exc.status_code >= 500:
            logger.error(
                f"POS error on {request.url.path}: {exc.error_code} - {exc.message}",
                exc_info=exc,
                extra={"details": exc.details}
            )
        else:
            logger.warning(f"POS error on {request.url.path}: {exc.error_code} - {exc.message}")

        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=CORS_HEADERS,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies are invalid input, not 422."""
        logger.warning(f"Invalid request on {request.url.path}: {exc.errors()}")

        error = InvalidPaymentPayloadError(
            "Malformed request",
            {"errors": [
                {"loc": list(item.get("loc", ())), "msg": item.get("msg")}
                for item in exc.errors()
            ]},
        )
        return JSONResponse(
            status_code=error.status_code,
            content=error.to_dict(),
            headers=CORS_HEADERS,
        )

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """Catch-all: log everything, tell the client nothing."""
        logger.error(f"Unexpected error: {str(exc)}", exc_info=True)

        error = InternalError(str(exc))
        return JSONResponse(
            status_code=error.status_code,
            content=error.to_dict(),
            headers=CORS_HEADERS,
        )

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": __version__}

    app.include_router(quotes_router, tags=["Quotes"])

    return app


def run() -> None:
    """Console entry point: load config and serve with uvicorn."""
    import uvicorn

    ensure_example_config(config_file_path())
    settings = get_settings()
    configure_logging(settings)

    if not settings.pos.accepted_mints:
        logger.error(
            f"No accepted mints configured. Edit {config_file_path()} "
            f"(see example.config.toml next to it) or set CASHU_POS_POS__ACCEPTED_MINTS."
        )
        raise SystemExit(1)

    logger.info(f"Starting POS server on {settings.pos.listen_host}:{settings.pos.listen_port}")
    uvicorn.run(
        create_app(settings),
        host=settings.pos.listen_host,
        port=settings.pos.listen_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
