# app/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from app.config import get_settings
from app.db.session import engine
from app.logging_config import configure_logging
from app.models import Base
from app.routers import bookings as bookings_router
from app.routers import events as events_router
from app.routers import hosts as hosts_router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Routers
app.include_router(events_router.router, prefix="/events", tags=["events"])
app.include_router(bookings_router.router, prefix="/bookings", tags=["bookings"])
app.include_router(hosts_router.router, prefix="/hosts", tags=["hosts"])


@app.get("/health")
def health_check():
    db_status = "ok"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        db_status = "error"

    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "database": db_status,
    }
