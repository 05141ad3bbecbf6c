"""
Tea Shop - Main FastAPI Application

Single entry point for the cart, product, admin and order API.
"""
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from teashop.errors import ERROR_INVALID_REQUEST, InvalidRequest, ShopError
from teashop.logging import get_logger
from teashop.realtime import RealtimeHub
from teashop.routers import cart_router, orders_router, products_router
from teashop.routers.deps import get_realtime_hub, shutdown_services

logger = get_logger(__name__)

CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]


# ==================== FASTAPI APP ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    get_realtime_hub().connect()
    yield
    # Shutdown
    shutdown_services()


app = FastAPI(
    title="Tea Shop",
    description="Cart, catalog and checkout API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== ERROR HANDLING ====================

@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    error = InvalidRequest(f"{ERROR_INVALID_REQUEST}: {len(exc.errors())} error(s)")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


app.include_router(cart_router, prefix="/api")
app.include_router(products_router, prefix="/api")
app.include_router(orders_router, prefix="/api")


# ==================== HEALTH CHECK ====================

@app.get("/api/health")
async def health_check(hub: RealtimeHub = Depends(get_realtime_hub)):
    """Health check endpoint"""
    return {"status": "ok", "service": "teashop", "realtime": hub.connected}
