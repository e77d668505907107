import asyncio
import logging
import os
import time
from pathlib import Path
import sys

# Allow running this demo without installing the package:
#   python examples/demo_fastapi_app.py
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fastapi import FastAPI, HTTPException

import polycache
from polycache import CacheConfig, NotFoundError, Options, cache_evict, cacheable

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="polycache demo")


@app.on_event("startup")
async def _startup() -> None:
    # CACHE_BACKEND=redis|leveldb|sqlite
    kind = os.getenv("CACHE_BACKEND", "sqlite")
    options = Options(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", "6379")),
        password=os.getenv("REDIS_PASSWORD") or None,
        prefix="demo",
        leveldb_path=os.getenv("LEVELDB_PATH", "./data/leveldb"),
        sqlite_path=os.getenv("SQLITE_PATH", polycache.MEMORY),
    )
    CacheConfig.init(polycache.new(kind, options))


@app.on_event("shutdown")
async def _shutdown() -> None:
    await CacheConfig.get_backend().close()


@app.get("/users/{user_id}")
@cacheable(namespace="users", key="get_user", ttl=30)
async def get_user(user_id: int) -> dict:
    # Simulate slow work
    await asyncio.sleep(2)
    logger.info("Fetching user %s from source", user_id)
    return {"user_id": user_id, "name": f"user-{user_id}", "ts": time.time()}


@app.delete("/users/{user_id}")
@cache_evict(namespace="users", key="get_user")
async def evict_user(user_id: int) -> dict:
    # Evicts the entry get_user stored for the same arguments.
    logger.info("Evicting cache for user %s", user_id)
    return {"evicted": True, "user_id": user_id}


@app.delete("/users/cache")
@cache_evict(namespace="users", all_entries=True)
async def evict_all_users() -> dict:
    logger.info("Evicting cache for all users")
    return {"evicted": "all"}


@app.put("/kv/{key}")
async def put_value(key: str, value: str, ttl: float = 0) -> dict:
    await CacheConfig.get_backend().set(key, value, ttl=ttl)
    return {"key": key, "stored": True}


@app.get("/kv/{key}")
async def get_value(key: str) -> dict:
    try:
        value = await CacheConfig.get_backend().get_str(key)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"{key} not cached")
    return {"key": key, "value": value}


# Run:
#   uvicorn examples.demo_fastapi_app:app --reload


if __name__ == "__main__":
    try:
        import uvicorn
    except ImportError as e:
        raise SystemExit(
            "uvicorn is required to run the demo. Install with: pip install polycache[examples]"
        ) from e

    uvicorn.run(
        "examples.demo_fastapi_app:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
