# jurisdiction/main.py
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from beanie import init_beanie
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo import AsyncMongoClient

from jurisdiction.auth.auth import hash_password
from jurisdiction.configs import as_bool, configs, env
from jurisdiction.exceptions import JurisdictionError
from jurisdiction.routes import admins, content, hierarchy, users
from jurisdiction.schemas.misc import HealthStatus
from jurisdiction.services.cache import ScopeCache
from jurisdiction.services.container import ServiceContainer
from jurisdiction.services.db import DOCUMENT_MODELS, BeanieStore, StoreHealthMonitor
from jurisdiction.services.retry import RetryPolicy

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

DEBUG = as_bool(configs.get("app", {}).get("debug_mode"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Connects to MongoDB, initializes Beanie and wires the services.
    Starts the cache sweeper and the store health probe in the background.
    """
    logger.info("Application startup initiated...")
    try:
        client = AsyncMongoClient(env.get("MONGO_URI"))
        await init_beanie(
            database=client[env.get("MONGO_DB")], document_models=DOCUMENT_MODELS
        )
        logger.info("MongoDB connection and Beanie initialization successful.")
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB or initialize Beanie: {e}")
        raise

    store = BeanieStore(
        client,
        retry=RetryPolicy.from_config(configs.get("store", {}).get("retry", {})),
        use_transactions=as_bool(configs.get("mongo", {}).get("use_transactions")),
    )
    cache_config = configs.get("cache", {})
    cache = ScopeCache(
        ttl_seconds=cache_config.get("ttl_seconds", 300),
        max_entries=cache_config.get("max_entries", 10000),
    )
    lock_tolerance = configs.get("optimistic_lock", {}).get("tolerance_seconds", 1)
    app.state.services = ServiceContainer(
        store, cache, hash_password, timedelta(seconds=lock_tolerance)
    )

    monitor = StoreHealthMonitor(
        store, configs.get("store", {}).get("health_probe_interval_seconds", 30)
    )
    app.state.health = monitor
    tasks = [
        asyncio.create_task(
            cache.run_sweeper(cache_config.get("sweep_interval_seconds", 60))
        ),
        asyncio.create_task(monitor.run()),
    ]

    yield

    logger.info("Application shutdown initiated...")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await client.close()
    logger.info("MongoDB connection closed.")


app = FastAPI(
    title=configs.get("app", {}).get("project_name", "Jurisdiction"),
    debug=DEBUG,
    lifespan=lifespan,
)

origins = [
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(JurisdictionError)
async def jurisdiction_error_handler(request: Request, exc: JurisdictionError):
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict(debug=DEBUG))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": "Internal server error"},
    )


app.include_router(
    hierarchy.router, prefix="/hierarchy", tags=["Administrative Hierarchy"]
)
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(admins.router, prefix="/admins", tags=["Admin Provisioning"])
app.include_router(content.router, prefix="/content", tags=["Content"])


@app.get("/health", response_model=HealthStatus)
async def health(request: Request):
    """Pings the store right away instead of waiting for the next probe."""
    monitor = getattr(request.app.state, "health", None)
    if monitor is None:
        monitor = StoreHealthMonitor(request.app.state.services.store)
    healthy = await monitor.probe()
    return {"message": "ok" if healthy else "degraded", "store_healthy": healthy}
