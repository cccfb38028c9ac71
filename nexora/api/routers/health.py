from fastapi import APIRouter, Request
from ...db import db_health
from ...redis_client import redis_health

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health(request: Request):
    db_ok, redis_ok = await db_health(request.app.state.db_engine), await redis_health()
    # redis only backs the purge worker; the API itself still works without it
    status = "ok" if (db_ok and redis_ok) else "degraded"
    return {
        "status": status,
        "dependencies": {
            "database": db_ok,
            "redis": redis_ok,
        },
    }

@router.get("/readiness")
async def readiness(request: Request):
    db_ok = await db_health(request.app.state.db_engine)
    return {"ready": db_ok, "database": db_ok}

@router.get("/liveness")
async def liveness():
    return {"alive": True}
