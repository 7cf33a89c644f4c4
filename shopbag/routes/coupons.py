"""
Coupon Routes for the shopping bag

POST /api/coupons/apply            - Apply a coupon code to the user's bag
POST /api/coupons/remove           - Remove the applied coupon
GET  /api/coupons/available        - Active coupons with applicability for the bag, plus expired ones
POST /api/coupons/threshold-check  - Best "add X more" suggestion for the bag
POST /api/coupons/validate-applied - Re-check the applied coupon after the bag changed
GET  /api/coupons/applicable       - Coupons valid for the bag right now
GET  /api/coupons/{coupon_id}/stats - Usage statistics for one coupon
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from shopbag.coupon_engine import StorageFailure, build_state_manager
from shopbag.coupon_engine.models import CouponActionResult, FailureKind
from shopbag.rate_limit import limiter

logger = logging.getLogger("shopbag.coupons")

router = APIRouter(prefix="/api/coupons", tags=["coupons"])

# --- Pydantic Models ---


class ApplyCouponRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    coupon_code: str = Field(alias="couponCode")


# --- Dependencies (imported from main) ---

_db_dependency = None
_token_dependency = None


def set_dependencies(db_dependency, token_dependency):
    """Set the actual dependencies from main module."""
    global _db_dependency, _token_dependency
    _db_dependency = db_dependency
    _token_dependency = token_dependency


def db_dep():
    """DB dependency wrapper that defers to the injected dependency at runtime."""
    if _db_dependency is None:
        raise RuntimeError("DB dependency not configured. Did you call set_dependencies()?")
    yield from _db_dependency()


def token_dep(authorization: str = Header(None)) -> Dict[str, Any]:
    """Auth dependency wrapper that defers to the injected dependency at runtime."""
    if _token_dependency is None:
        raise RuntimeError("Token dependency not configured. Did you call set_dependencies()?")
    return _token_dependency(authorization)


# --- Helper Functions ---

_FAILURE_STATUS = {
    FailureKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    FailureKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FailureKind.CONFLICT: status.HTTP_409_CONFLICT,
}


def action_response(result: CouponActionResult) -> JSONResponse:
    """Map an apply/remove outcome to its HTTP status."""
    if result.success:
        return JSONResponse(result.to_dict(), status_code=200)
    return JSONResponse(
        result.to_dict(),
        status_code=_FAILURE_STATUS.get(result.failure, status.HTTP_400_BAD_REQUEST),
    )


def storage_error(action: str, user_id: str, e: Exception) -> HTTPException:
    logger.error(f"Failed to {action} for user {user_id}: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {str(e)}"
    )


# --- Routes ---

@router.post("/apply")
@limiter.limit("30/minute")
async def apply_coupon(
    request: Request,
    payload: ApplyCouponRequest,
    user: Dict[str, Any] = Depends(token_dep),
    db: Session = Depends(db_dep)
) -> JSONResponse:
    """
    Apply a coupon to the user's bag.
    Returns: { "success", "message", "discountAmount", "couponCode", "cartTotal", "newTotal" }
    """
    user_id = user["user_id"]

    try:
        result = build_state_manager(db).apply_coupon(user_id, payload.coupon_code)
        return action_response(result)

    except StorageFailure as e:
        raise storage_error("apply coupon", user_id, e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to apply coupon for user {user_id}: {e}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to apply coupon: {str(e)}"
        )


@router.post("/remove")
@limiter.limit("30/minute")
async def remove_coupon(
    request: Request,
    user: Dict[str, Any] = Depends(token_dep),
    db: Session = Depends(db_dep)
) -> JSONResponse:
    """Remove the applied coupon. Succeeds when nothing is applied."""
    user_id = user["user_id"]

    try:
        result = build_state_manager(db).remove_coupon(user_id)
        return action_response(result)

    except StorageFailure as e:
        raise storage_error("remove coupon", user_id, e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to remove coupon for user {user_id}: {e}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to remove coupon: {str(e)}"
        )


@router.get("/available")
async def get_available_coupons(
    user: Dict[str, Any] = Depends(token_dep),
    db: Session = Depends(db_dep)
) -> JSONResponse:
    """
    Active coupons annotated for the current bag, and expired ones.
    Returns: { "availableCoupons": [...], "expiredCoupons": [...], "cartTotal" }
    """
    user_id = user["user_id"]

    try:
        return JSONResponse(build_state_manager(db).get_available_coupons(user_id), status_code=200)

    except StorageFailure as e:
        raise storage_error("fetch coupons", user_id, e)
    except Exception as e:
        logger.exception(f"Failed to fetch coupons for user {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch coupons: {str(e)}"
        )


@router.post("/threshold-check")
async def threshold_check(
    max_gap: Optional[float] = Query(None, alias="maxGap", ge=0),
    user: Dict[str, Any] = Depends(token_dep),
    db: Session = Depends(db_dep)
) -> JSONResponse:
    """
    Smallest "add X more" gap that unlocks a coupon.
    Returns: { "cartTotal", "suggestion": {coupon, amountNeeded, potentialSavings} | null }
    """
    user_id = user["user_id"]

    try:
        manager = build_state_manager(db)
        if max_gap is None:
            body = manager.get_threshold_suggestion(user_id)
        else:
            body = manager.get_threshold_suggestion(user_id, max_gap=str(max_gap))
        return JSONResponse(body, status_code=200)

    except StorageFailure as e:
        raise storage_error("check coupon thresholds", user_id, e)
    except Exception as e:
        logger.exception(f"Failed to check coupon thresholds for user {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to check coupon thresholds: {str(e)}"
        )


@router.post("/validate-applied")
async def validate_applied(
    user: Dict[str, Any] = Depends(token_dep),
    db: Session = Depends(db_dep)
) -> JSONResponse:
    """
    Re-check the applied coupon after bag changes; clears it when no longer valid.
    Returns: { "isValid", "shouldRemove", "reason", "newDiscount" }
    """
    user_id = user["user_id"]

    try:
        result = build_state_manager(db).revalidate_applied_coupon(user_id)
        return JSONResponse(result.to_dict(), status_code=200)

    except StorageFailure as e:
        raise storage_error("validate applied coupon", user_id, e)
    except Exception as e:
        logger.exception(f"Failed to validate applied coupon for user {user_id}: {e}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to validate applied coupon: {str(e)}"
        )


@router.get("/applicable")
async def get_applicable_coupons(
    user: Dict[str, Any] = Depends(token_dep),
    db: Session = Depends(db_dep)
) -> JSONResponse:
    """Coupons valid for the current bag, highest priority and discount first."""
    user_id = user["user_id"]

    try:
        coupons = build_state_manager(db).find_applicable_coupons(user_id)
        return JSONResponse({"coupons": coupons, "count": len(coupons)}, status_code=200)

    except StorageFailure as e:
        raise storage_error("fetch applicable coupons", user_id, e)
    except Exception as e:
        logger.exception(f"Failed to fetch applicable coupons for user {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch applicable coupons: {str(e)}"
        )


@router.get("/{coupon_id}/stats")
async def get_coupon_stats(
    coupon_id: str,
    user: Dict[str, Any] = Depends(token_dep),
    db: Session = Depends(db_dep)
) -> JSONResponse:
    """Usage statistics for a coupon."""
    try:
        stats = build_state_manager(db).get_usage_stats(coupon_id)
        if stats is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Coupon not found"
            )
        return JSONResponse(stats, status_code=200)

    except StorageFailure as e:
        raise storage_error("fetch coupon stats", user["user_id"], e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to fetch stats for coupon {coupon_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch coupon stats: {str(e)}"
        )
