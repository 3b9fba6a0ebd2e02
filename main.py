"""
Message Ledger Backend
Trial and paid message credits, daily refills and Telegram Stars payments
"""

import logging
import traceback

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

# Import routers
from routers.balance_router import balance_router
from routers.payments_router import payments_router
from routers.usage_router import usage_router
from admin_tools import admin_router
from database import init_db
from config.settings import settings, LOGS_DIR, IS_PRODUCTION

# ============================================================================
# LOGGING
# ============================================================================

# Logging setup - write ALL events to /logs/app.log
LOGS_DIR.mkdir(exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOGS_DIR / "app.log"),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP SETUP
# ============================================================================

app = FastAPI(title="Message Ledger")


# Uncaught exception middleware - logs all unhandled exceptions and returns 500
class UncaughtExceptionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Uncaught exception: {e}\n{traceback.format_exc()}")
            return JSONResponse(
                status_code=500,
                content={"ok": False, "data": {}, "error": "INTERNAL_ERROR", "message": "Internal Server Error"}
            )


app.add_middleware(UncaughtExceptionMiddleware)

# CORS MUST be near the bottom
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# STARTUP CHECKS
# ============================================================================
@app.on_event("startup")
async def check_secrets_on_startup():
    """Warn about collaborator endpoints left unprotected (non-fatal)"""
    if not settings.payment_webhook_secret:
        level = logging.ERROR if IS_PRODUCTION else logging.WARNING
        logger.log(level, "PAYMENT_WEBHOOK_SECRET is not set. Payment confirmations are accepted without a secret.")
    if not settings.admin_secret:
        logger.info("ADMIN_SECRET is not set. Maintenance endpoints are disabled.")
    if not settings.ledger_service_secret:
        logger.info("LEDGER_SERVICE_SECRET is not set. Refunds are disabled.")


# Initialize database on startup
@app.on_event("startup")
async def initialize_database():
    """Initialize the database and create all tables."""
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


@app.get("/health")
async def health():
    return {"ok": True, "status": "healthy"}

# ============================================================================
# INCLUDE ROUTERS
# ============================================================================
app.include_router(balance_router)
app.include_router(payments_router)
app.include_router(usage_router)
app.include_router(admin_router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
