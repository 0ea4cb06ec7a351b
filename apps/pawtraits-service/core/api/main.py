"""
FastAPI app assembly: logging, middleware and router wiring.
"""
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configure logging
LOG_LEVEL_NAME = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL = getattr(logging, LOG_LEVEL_NAME, logging.INFO)
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)
logger.setLevel(LOG_LEVEL)
logger.info("app_startup: log_level=%s", LOG_LEVEL_NAME)

from core.api.commissions import router as commissions_router  # noqa: E402
from core.api.messaging import router as messaging_router  # noqa: E402
from core.api.webhooks import router as webhooks_router  # noqa: E402
from core.utils.feature_flags import get_feature_flags  # noqa: E402
from core.utils.urls import get_app_base_url  # noqa: E402

# Database schema is managed by Alembic migrations.

app = FastAPI(
    title="Pawtraits Commerce Service",
    description="Stripe and Gelato webhooks, the referral commission ledger and customer messaging.",
    version="1.0.0",
)

# Avoid implicit trailing-slash redirects for predictable URLs
app.router.redirect_slashes = False

origins = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:8000",
    get_app_base_url(),
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(set(origins)),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks_router)
app.include_router(messaging_router)
app.include_router(commissions_router)


@app.get("/health")
def health_check():
    return {"status": "ok", "service": "pawtraits-service", "features": get_feature_flags()}
