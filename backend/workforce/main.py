import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workforce.agents.processor import EventProcessor
from workforce.agents.registry import build_default_registry
from workforce.catalog import seed_agent_catalog
from workforce.config import configure_logging, settings
from workforce.database import async_session, init_db
from workforce.routers import (
    agents,
    analytics,
    campaigns,
    conversations,
    customers,
    events,
    reservations,
    restaurants,
    reviews,
    staff,
)

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await init_db()
    async with async_session() as session:
        await seed_agent_catalog(session)

    processor = None
    task = None
    if settings.RUN_EVENT_PROCESSOR:
        processor = EventProcessor(build_default_registry())
        task = asyncio.create_task(processor.run(settings.EVENT_POLL_INTERVAL_SECONDS))
    app.state.processor = processor
    yield
    # Shutdown
    if processor is not None:
        processor.stop()
        await task
        await processor.completion.close()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(restaurants.router)
app.include_router(staff.router)
app.include_router(customers.router)
app.include_router(agents.router)
app.include_router(reservations.router)
app.include_router(conversations.router)
app.include_router(reviews.router)
app.include_router(campaigns.router)
app.include_router(events.router)
app.include_router(analytics.router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": settings.APP_NAME}
