from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.routing import APIRouter
from loguru import logger
from sse_starlette.sse import AppStatus

from virtualco.company_runtime.log import setup_logging
from virtualco.company_runtime.runtime import CompanyRuntime, create_snapshot_backend
from virtualco.company_runtime.settings import get_settings
from virtualco.company_runtime.store.company import open_store


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)

    logger.info("Company Runtime starting (host={}, port={})", settings.host, settings.port)
    prefix_info = f", prefix={settings.data_prefix}" if settings.data_prefix else ""
    logger.info("Data root: {} (store={}{})", settings.data_root, settings.state_store, prefix_info)
    if not settings.profile_url:
        logger.info("No VIRTUALCO_PROFILE_URL set -- using built-in provider endpoints")

    backend = create_snapshot_backend(settings)

    # The store flushes its final snapshot when this block exits.
    with open_store(backend, flush_delay=settings.flush_delay, default_model=settings.default_model) as store:
        runtime = CompanyRuntime(settings, store)
        _app.state.runtime = runtime

        # -- SSE ---------------------------------------------------------------
        # Let event streams complete naturally on shutdown instead of being
        # terminated immediately.
        AppStatus.disable_automatic_graceful_drain()

        # -- Startup recovery --------------------------------------------------
        if settings.resume_on_start:
            resumed = runtime.company.resume_all()
            logger.info("Startup recovery: {} runners resumed", resumed)

        yield

        # -- Shutdown ----------------------------------------------------------
        logger.info("Company Runtime shutting down (active_runners={})", runtime.registry.active_count)

        # 1. Refuse new runners, stop the running ones and wait for their
        #    current cycle; cancel whatever is left after the timeout.
        await runtime.shutdown(settings.graceful_shutdown_timeout)

        # 2. Signal SSE streams to close.  Must happen AFTER the drain so
        #    the final AgentStopped events reach the subscribers.
        AppStatus.should_exit = True
        logger.info("SSE: signalled streams to close")

        _app.state.runtime = None


app = FastAPI(title="VirtualCo Company Runtime", lifespan=lifespan)

# ---------------------------------------------------------------------------
# API router -- all backend endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


# -- Routers -----------------------------------------------------------------
from virtualco.company_runtime.routers.agents import router as agents_router  # noqa: E402
from virtualco.company_runtime.routers.events import router as events_router  # noqa: E402
from virtualco.company_runtime.routers.groups import router as groups_router  # noqa: E402
from virtualco.company_runtime.routers.workspaces import router as workspaces_router  # noqa: E402

api.include_router(workspaces_router)
api.include_router(groups_router)
api.include_router(agents_router)
api.include_router(events_router)

app.include_router(api)
