# Billing backend entrypoint: invoice drafting, approval workflow and PDF output.

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from invoice_backend.app.api import invoices
from invoice_backend.app.core.errors import register_exception_handlers
from invoice_backend.app.core.logging_config import configure_logging, install_request_context
from invoice_backend.app.core.dev_seed import ensure_default_dev_partners
from invoice_backend.app.core.settings import get_settings
from invoice_backend.app.db.base import Base
from invoice_backend.app.db.session import SessionLocal, engine

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name, version=settings.api_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_request_context(app)
register_exception_handlers(app)

app.include_router(invoices.router)


@app.get("/")
def read_root():
    return {"app": "FlexGo Billing backend", "status": "ok"}


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.on_event("startup")
def seed_default_dev_partners():
    if settings.environment != "development":
        return
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        ensure_default_dev_partners(db)
    finally:
        db.close()
