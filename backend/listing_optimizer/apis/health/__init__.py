from fastapi import APIRouter
from fastapi.responses import JSONResponse
from listing_optimizer.libs.database import _get_storage_backend, count_optimizations

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    """Health check endpoint"""
    return {"success": True, "data": {"status": "healthy", "service": "listing_optimizer"}}


@router.get("/storage")
async def storage_healthcheck():
    """Verify active storage backend connectivity.

    - postgres: checks DB and record count
    - sqlite: checks file and record count
    """
    backend = _get_storage_backend()
    try:
        total = await count_optimizations()
        return {"success": True, "data": {"status": "ok", "backend": backend, "optimizations": total}}
    except Exception as e:
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": f"Storage connection failed ({backend}): {e}"},
        )
