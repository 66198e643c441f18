import logging
import os
import time

from fastapi import FastAPI, Request

from api import state
from api.errors import install_error_handlers
from api.metrics import REQUESTS_TOTAL, REQUEST_LATENCY_SECONDS
from api.routers import chat, notes, ops, suggestions, tasks
from storage import db
from storage.postgres_store import PostgresStore

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="TaskFlow API")
install_error_handlers(app)

app.include_router(tasks.router)
app.include_router(notes.router)
app.include_router(suggestions.router)
app.include_router(chat.router)
app.include_router(ops.router)


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.time()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        # label by route template so ids do not blow up cardinality
        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or "unmatched"
        REQUESTS_TOTAL.labels(endpoint=endpoint, method=request.method, status=str(status)).inc()
        REQUEST_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.time() - start)


@app.on_event("startup")
async def startup() -> None:
    if not db.DATABASE_URL:
        logger.warning("DATABASE_URL not set, using the in-memory store (data is lost on restart)")
        return

    await db.init_db_pool()
    await db.init_schema()
    state.store = PostgresStore()
    logger.info("Using the PostgreSQL store")


@app.on_event("shutdown")
async def shutdown() -> None:
    if isinstance(state.store, PostgresStore):
        await db.close_db_pool()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    run()
