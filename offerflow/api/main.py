import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from offerflow import __version__
from offerflow.core.config import get_settings
from offerflow.core.db import init_db
from offerflow.core.ingestion import start_ingestion
from offerflow.core.lifecycle import stop_quietly
from offerflow.core.matching import start_scheduler, stop_scheduler
from offerflow.api.routers import customers_router, invoices_router, offers_router, scheduler_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown."""
    # Startup
    init_db()

    app.state.ingestion = None
    try:
        app.state.ingestion = start_ingestion(get_settings())
    except Exception as e:
        logger.error(f"Failed to start offer ingestion: {e}")

    try:
        start_scheduler()
    except Exception as e:
        logger.error(f"Failed to start scheduler: {e}")

    yield  # Application runs here

    # Shutdown: producers first, the broker connection last
    stop_quietly("scheduler", stop_scheduler)
    if app.state.ingestion is not None:
        stop_quietly("offer ingestion", app.state.ingestion.stop)


app = FastAPI(title="offerflow", version=__version__, lifespan=lifespan)

app.include_router(customers_router)
app.include_router(offers_router)
app.include_router(invoices_router)
app.include_router(scheduler_router)


@app.get("/api/health")
def health_check():
    return {"status": "ok", "version": __version__}
