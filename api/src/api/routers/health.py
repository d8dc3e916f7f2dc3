"""Health check."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    gateway = getattr(request.app.state, "payment_gateway", None)
    return {
        "status": "ok",
        "service": "kliqt-payments-api",
        "stripe_configured": bool(gateway and gateway.is_configured),
    }


@router.get("/health/ready")
async def readiness_check():
    try:
        from kliqt.database import get_session
        from sqlalchemy import text

        async with get_session() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "ready"}
    except Exception as exc:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "error": str(exc)},
        )
