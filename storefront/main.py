# storefront/main.py
from contextlib import asynccontextmanager
import logging

from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI

from storefront.core.config import get_settings
from storefront.database import create_db_and_tables

# Import models so SQLModel metadata is populated before create_all()
from storefront.models import user as _user_models  # noqa: F401
from storefront.models import product as _product_models  # noqa: F401
from storefront.models import address as _address_models  # noqa: F401
from storefront.models import cart as _cart_models  # noqa: F401
from storefront.models import coupon as _coupon_models  # noqa: F401
from storefront.models import order as _order_models  # noqa: F401
from storefront.models import payment as _payment_models  # noqa: F401

# Routers
from storefront.routers.cart import router as cart_router
from storefront.routers.checkout import router as checkout_router
from storefront.routers.orders import router as orders_router
from storefront.routers.payments import router as payments_router
from storefront.routers.coupons import router as coupons_router

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create missing tables on startup. A database that cannot be reached
    stops the process here rather than on the first checkout.
    """
    backend = settings.DATABASE_URL.split(":", 1)[0]
    logger.info("Startup: preparing %s schema", backend)
    try:
        create_db_and_tables()
    except Exception:
        logger.exception("Startup: database unavailable (%s)", backend)
        raise
    logger.info("Startup: ready, API mounted at %s", settings.API_V1_STR)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


# --- CORS configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Versioned API prefix, e.g. /api/v1
app.include_router(cart_router, prefix=settings.API_V1_STR)
app.include_router(checkout_router, prefix=settings.API_V1_STR)
app.include_router(orders_router, prefix=settings.API_V1_STR)
app.include_router(payments_router, prefix=settings.API_V1_STR)
app.include_router(coupons_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "storefront-checkout"}
