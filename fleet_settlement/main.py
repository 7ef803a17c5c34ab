# fleet_settlement/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI

from fleet_settlement.accounts.router import router as accounts_router
from fleet_settlement.core.config import settings
from fleet_settlement.core.db import init_db
from fleet_settlement.ledger.router import router as ledger_router
from fleet_settlement.obligations.router import router as obligations_router
from fleet_settlement.settlements.providers import configure_data_provider
from fleet_settlement.settlements.router import router as settlements_router
from fleet_settlement.utils.logger import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    configure_data_provider()
    logger.info("Fleet settlement API started", environment=settings.environment)
    yield


app = FastAPI(title="Fleet Settlement API", lifespan=lifespan)

app.include_router(accounts_router)
app.include_router(obligations_router)
app.include_router(settlements_router)
app.include_router(ledger_router)


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok", "environment": settings.environment}
