import logging
import time

import redis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_utils.tasks import repeat_every

from .api import cart, inventory, menu, orders, payments, reports, restaurant, tables, websocket
from .config import settings
from .core.errors import POSError
from .core.logging_setup import setup_logging
from .services.offline_queue import OfflineQueue, connectivity
from .services.orders import OrderService
from .services.redis import redis_client
from .utils.clock import utc_now

logger = logging.getLogger(__name__)

app = FastAPI(title="RestoPOS API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add response time header"""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


@app.exception_handler(POSError)
async def pos_error_handler(request: Request, exc: POSError):
    content = {"success": False, "error": exc.message}
    order_id = getattr(exc, "order_id", None)
    if order_id:
        content["order_id"] = order_id
    return JSONResponse(status_code=400, content=content)


@app.get("/")
async def root():
    return {"message": "RestoPOS API is running"}


@app.on_event("startup")
async def startup_event():
    setup_logging()
    try:
        redis_client.ping()
        logger.info("Redis connected successfully")
    except redis.RedisError as e:
        logger.error("Redis connection failed: %s", e)


@app.on_event("startup")
@repeat_every(seconds=settings.CONNECTIVITY_PROBE_SECONDS)
async def probe_backend():
    """Track backend reachability and drain offline orders while it is up"""
    if not connectivity.probe():
        return
    connectivity.mark_online()
    try:
        await OfflineQueue.flush_all(OrderService.create_queued_order)
    except redis.RedisError as e:
        logger.error("offline sync skipped, Redis unavailable: %s", e)


@app.on_event("shutdown")
async def shutdown_event():
    await websocket.hub.close()
    try:
        redis_client.client.close()
        logger.info("Redis connection closed")
    except redis.RedisError as e:
        logger.warning("Redis close failed: %s", e)


app.include_router(restaurant.router)
app.include_router(menu.router)
app.include_router(cart.router)
app.include_router(orders.router)
app.include_router(payments.router)
app.include_router(tables.router)
app.include_router(inventory.router)
app.include_router(reports.router)
app.include_router(websocket.router)


@app.get("/health")
async def health_check():
    try:
        redis_ok = bool(redis_client.ping())
    except redis.RedisError:
        redis_ok = False
    return {
        "status": "healthy",
        "backend_online": connectivity.is_online,
        "redis": redis_ok,
        "timestamp": utc_now().isoformat(),
    }
