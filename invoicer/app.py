from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from invoicer import __version__
from invoicer.application import InvoicingService
from invoicer.core.registry import JobRegistry
from invoicer.error_handlers import register_error_handlers
from invoicer.infrastructure import InventoryClient, JsonProfileRepository, ProfileRepository
from invoicer.middleware import configure_logging, register_request_logging
from invoicer.routes import invoices, jobs, profiles, socket
from invoicer.settings import Settings, get_settings


def create_app(
    settings: Settings | None = None,
    *,
    inventory_client: InventoryClient | None = None,
    profile_repository: ProfileRepository | None = None,
    job_registry: JobRegistry | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    client = inventory_client or InventoryClient(
        api_base=settings.INVENTORY_API_BASE,
        accounts_url=settings.INVENTORY_ACCOUNTS_URL,
        timeout=settings.INVENTORY_TIMEOUT,
    )
    repository = profile_repository or JsonProfileRepository(settings.PROFILES_PATH)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.job_registry.reset()
        await client.aclose()

    app = FastAPI(title="Inventory Invoicer API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.job_registry = job_registry if job_registry is not None else JobRegistry()
    app.state.inventory_client = client
    app.state.invoicing = InvoicingService(client, repository)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_request_logging(app)
    register_error_handlers(app)

    app.include_router(jobs.router, prefix="/api")
    app.include_router(profiles.router, prefix="/api")
    app.include_router(invoices.router, prefix="/api")
    app.include_router(socket.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Inventory Invoicer API",
                "docs": "/docs",
                "socket": "/api/ws",
                "health": "/api/jobs",
            }
        )

    return app


app = create_app()
