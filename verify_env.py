"""Check that the services a deployment depends on are reachable.

Run with ``python verify_env.py`` after filling in ``.env``.
"""

import asyncio
import os

import redis.asyncio as redis
from dotenv import load_dotenv
from sqlalchemy import inspect, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from src.core.database import resolve_async_database_url

load_dotenv()

REQUIRED_TABLES = ("users", "vehicles", "appointments", "service_records", "notifications")

HEALTH_QUERIES = {
    "postgresql": "SELECT version();",
    "mysql": "SELECT VERSION();",
}


async def verify_database() -> bool:
    print("-" * 30)
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        print("DATABASE_URL is not set")
        return False

    try:
        async_url = resolve_async_database_url(db_url)
    except ValueError as exc:
        print(f"Unsupported database configuration: {exc}")
        return False
    url = make_url(async_url)
    backend = url.get_backend_name()
    print(f"Checking {backend} at {url.render_as_string(hide_password=True)}")

    engine = create_async_engine(async_url, echo=False)
    try:
        async with engine.connect() as conn:
            version = (await conn.execute(text(HEALTH_QUERIES.get(backend, "SELECT 1")))).scalar()
            print(f"Database reachable: {version}")
            existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    except (SQLAlchemyError, OSError) as exc:
        print(f"Database connection failed: {exc}")
        return False
    finally:
        await engine.dispose()

    missing = [table for table in REQUIRED_TABLES if table not in existing]
    if missing:
        print(f"Missing tables (run `alembic upgrade head`): {', '.join(missing)}")
        return False
    return True


async def verify_redis() -> bool:
    print("-" * 30)
    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        print("REDIS_URL is not set; admission lock and rate limiter run in-process only")
        return True

    print(f"Checking Redis at {redis_url.split('@')[-1]}")
    client = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
        print("Redis reachable")
        return True
    except (redis.RedisError, OSError) as exc:
        print(f"Redis connection failed: {exc}")
        return False
    finally:
        await client.aclose()


async def main() -> None:
    db_ok = await verify_database()
    redis_ok = await verify_redis()
    print("-" * 30)
    if db_ok and redis_ok:
        print("Environment looks good.")
    else:
        print("Environment has problems; check .env and the running containers.")


if __name__ == "__main__":
    asyncio.run(main())
