from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from backend.app.api.v1.router import api_router
from backend.app.config import get_settings
from backend.app.database import create_tables
from backend.app.logging_config import configure_logging

logger = structlog.get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_settings())
    create_tables()
    logger.info("application_started")
    yield
    logger.info("application_stopped")

app = FastAPI(title="Household Expenses API", lifespan=lifespan)

# Include all API routes
app.include_router(api_router, prefix="/api/v1")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("backend.app.main:app", host="0.0.0.0", port=8000, reload=True)
