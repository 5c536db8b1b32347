import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Load environment variables
load_dotenv()

from app.api.deps import limiter
from app.api.routes import conversations, messages, projects
from app.api import websocket
from app.core.config import settings as app_settings
from app.db.database import connect_db, database, disconnect_db
from app.services.blob_storage import LocalBlobStorage
from app.services.event_bus import event_bus
from app.services.job_runtime import job_runtime
from app.services.message_dispatch import MessageDispatcher
from app.services.message_processor import MessageProcessor
from app.services.retry_policy import RetryPolicy

logging.basicConfig(
    level=app_settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Polaris API",
    version="1.0.0",
    description="Backend API for the Polaris coding agent"
)

# Attach limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(projects.router, prefix="/api")
app.include_router(conversations.router, prefix="/api")
app.include_router(messages.router, prefix="/api")
app.include_router(websocket.router)

# Built once per process; the runtime is a module singleton
app.state.dispatcher = MessageDispatcher(database, job_runtime)


@app.get("/")
async def root():
    return {
        "name": "Polaris API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.on_event("startup")
async def startup():
    """Connect to the database, register jobs and resume interrupted runs."""
    await connect_db()
    logger.info("Effective settings: %s", app_settings.get_effective_settings())

    job_runtime.bind(
        database,
        RetryPolicy(
            initial_delay_ms=app_settings.step_retry_initial_delay_ms,
            max_attempts=app_settings.step_max_attempts,
        ),
    )
    processor = MessageProcessor(
        database,
        storage=LocalBlobStorage(app_settings.blob_storage_dir),
        on_event=event_bus.publish,
    )
    job_runtime.register(processor.job_function())

    resumed = await job_runtime.resume_incomplete()
    logger.info("Polaris API started (%d run(s) resumed)", resumed)


@app.on_event("shutdown")
async def shutdown():
    """Stop in-process jobs and disconnect from the database."""
    await job_runtime.shutdown()
    await disconnect_db()
