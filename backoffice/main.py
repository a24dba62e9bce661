import os

from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.orm import Session

from backoffice.api.endpoints import listings, pricing, sync, tokens
from backoffice.db import engine, get_session, session_factory
from backoffice.models import Base
from backoffice.services.pricing.fee_settings import FeeSettingsRepository

app = FastAPI(title="Marketplace Back-office")

app.include_router(sync.router, prefix="/api/sync", tags=["Sync"])
app.include_router(tokens.router, prefix="/api/tokens", tags=["Tokens"])
app.include_router(pricing.router, prefix="/api/pricing", tags=["Pricing"])
app.include_router(listings.router, prefix="/api/listings", tags=["Listings"])


@app.on_event("startup")
def on_startup() -> None:
    # Alembic 이 기본이지만 로컬 개발용 자동 생성 지원
    if os.getenv("DB_AUTO_CREATE_TABLES", "").strip() in ("1", "true", "TRUE", "yes", "YES"):
        Base.metadata.create_all(bind=engine)
        with session_factory() as session:
            FeeSettingsRepository(session).ensure_defaults()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/db/ping")
def db_ping(session: Session = Depends(get_session)) -> dict:
    value = session.execute(text("SELECT 1")).scalar_one()
    return {"ok": value == 1}
