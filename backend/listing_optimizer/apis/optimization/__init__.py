from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from typing import Any, Dict, List, Optional
import logging
import re

from listing_optimizer.libs.asin import validate_asin
from listing_optimizer.libs.database import (
    get_all_optimizations,
    get_change_history,
    get_history,
    get_optimization_by_id,
    get_optimizations_by_asin,
)
from listing_optimizer.libs.errors import ListingOptimizerError
from listing_optimizer.libs.models import ChangeRecord, HistoryItem, OptimizationRecord
from listing_optimizer.libs.pipeline import OptimizationOutcome, run_optimization

router = APIRouter(tags=["optimization"])
logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"[0-9]+")
# sqlite3 cannot bind integers above this.
MAX_ROW_ID = 2**63 - 1


# ---- Envelope helpers ----
def _ok(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": True, "data": data})


def _fail(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _error_response(e: Exception, action: str) -> JSONResponse:
    if isinstance(e, ListingOptimizerError):
        logger.warning("%s failed: %s", action, e)
        return _fail(str(e), e.status_code)
    logger.exception("%s error", action)
    return _fail(str(e) or "Internal server error", 500)


def _iso(val) -> Optional[str]:
    return val.isoformat() if val else None


def _record_json(r: OptimizationRecord) -> Dict[str, Any]:
    return {
        "id": r.id,
        "asin": r.asin,
        "originalTitle": r.original_title,
        "originalBullets": list(r.original_bullets),
        "originalDescription": r.original_description,
        "optimizedTitle": r.optimized_title,
        "optimizedBullets": list(r.optimized_bullets),
        "optimizedDescription": r.optimized_description,
        "suggestedKeywords": list(r.suggested_keywords),
        "createdAt": _iso(r.created_at),
        "updatedAt": _iso(r.updated_at),
    }


def _history_json(h: HistoryItem) -> Dict[str, Any]:
    return {
        "id": h.id,
        "asin": h.asin,
        "optimizedTitle": h.optimized_title,
        "optimizedBullets": list(h.optimized_bullets),
        "optimizedDescription": h.optimized_description,
        "suggestedKeywords": list(h.suggested_keywords),
        "createdAt": _iso(h.created_at),
    }


def _change_json(c: ChangeRecord) -> Dict[str, Any]:
    return {
        "id": c.id,
        "asin": c.asin,
        "optimizationId": c.optimization_id,
        "fieldName": c.field_name,
        "oldValue": c.old_value,
        "newValue": c.new_value,
        "changedAt": _iso(c.changed_at),
    }


def _outcome_json(o: OptimizationOutcome) -> Dict[str, Any]:
    return {
        "id": o.id,
        "asin": o.asin,
        "region": o.region.value,
        "original": {
            "title": o.listing.title,
            "bullets": list(o.listing.bullets),
            "description": o.listing.description,
        },
        "optimized": {
            "title": o.result.optimized_title,
            "bullets": list(o.result.optimized_bullets),
            "description": o.result.optimized_description,
            "keywords": list(o.result.suggested_keywords),
        },
        "validationWarnings": list(o.validation.errors),
    }


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


# ---- Routes ----
@router.post("/optimize")
async def optimize_product(req: Request) -> JSONResponse:
    """Scrape, rewrite and store one listing.

    Body: ``{"asin": "B0...", "region": "IN", "stream": false}``. Region and
    stream are optional.
    """
    try:
        body = await req.json()
    except Exception:
        body = {}
    if not isinstance(body, dict):
        body = {}

    try:
        outcome = await run_optimization(
            body.get("asin"),
            body.get("region"),
            stream=_as_bool(body.get("stream", False)),
        )
    except Exception as e:
        return _error_response(e, "Optimization")

    return _ok(_outcome_json(outcome))


@router.get("/optimizations")
async def list_optimizations() -> JSONResponse:
    try:
        records: List[OptimizationRecord] = await get_all_optimizations()
    except Exception as e:
        return _error_response(e, "Get all optimizations")
    return _ok({"count": len(records), "optimizations": [_record_json(r) for r in records]})


@router.get("/optimizations/{optimization_id}")
async def get_optimization(optimization_id: str) -> JSONResponse:
    if not _DIGITS.fullmatch(optimization_id):
        return _fail("Optimization ID must be a positive integer", 400)
    oid = int(optimization_id)
    if not 0 < oid <= MAX_ROW_ID:
        return _fail("Optimization not found", 404)

    try:
        record = await get_optimization_by_id(oid)
    except Exception as e:
        return _error_response(e, "Get optimization")
    if record is None:
        return _fail("Optimization not found", 404)
    return _ok(_record_json(record))


@router.get("/history/{asin}")
async def get_history_by_asin(asin: str) -> JSONResponse:
    """Every stored optimization for the ASIN, original and optimized fields, newest first."""
    try:
        clean = validate_asin(asin)
        records = await get_optimizations_by_asin(clean)
    except Exception as e:
        return _error_response(e, "Get history")
    return _ok({"asin": clean, "count": len(records), "optimizations": [_record_json(r) for r in records]})


@router.get("/changes/{asin}")
async def get_changes_by_asin(asin: str) -> JSONResponse:
    """Optimized versions only, newest first."""
    try:
        clean = validate_asin(asin)
        items = await get_history(clean)
    except Exception as e:
        return _error_response(e, "Get change history")
    return _ok({"asin": clean, "count": len(items), "history": [_history_json(h) for h in items]})


@router.get("/changes/{asin}/fields")
async def get_field_changes_by_asin(asin: str) -> JSONResponse:
    """One row per field the rewrite changed, newest first."""
    try:
        clean = validate_asin(asin)
        changes = await get_change_history(clean)
    except Exception as e:
        return _error_response(e, "Get field changes")
    return _ok({"asin": clean, "count": len(changes), "changes": [_change_json(c) for c in changes]})
