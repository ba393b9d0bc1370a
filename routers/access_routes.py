# routers/access_routes.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from database import get_db
from models.user import User
from schemas.access import AccessDecision, DownloadRecordIn, DownloadRecordOut, DownloadStatsOut
from services.access_evaluator import AccessEvaluator
from services.image_service import get_image
from services.supabase_auth import get_current_db_user, get_optional_db_user
from services.usage_tracker import UsageTracker

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/api/images/{image_id}/access",
    response_model=AccessDecision,
    response_model_exclude_none=True,
)
def check_image_access(
    image_id: str,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_db_user),
):
    if get_image(db, image_id) is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return AccessEvaluator(db).evaluate(user.id if user else None, image_id)


@router.post("/api/downloads/record", response_model=DownloadRecordOut)
def record_download(
    payload: DownloadRecordIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    if get_image(db, payload.image_id) is None:
        raise HTTPException(status_code=404, detail="Image not found")

    tracker = UsageTracker(db)
    decision = AccessEvaluator(db, usage_tracker=tracker).evaluate(user.id, payload.image_id)
    if not decision.can_download:
        logger.info(
            "download_denied user_id=%s image_id=%s reason=%s",
            user.id, payload.image_id, decision.reason,
        )
        raise HTTPException(
            status_code=403,
            detail={"code": "DOWNLOAD_DENIED", "message": decision.reason, "accessType": decision.access_type},
        )

    download_type = "subscription" if decision.access_type == "subscription" else "purchase"
    counted = tracker.record_download(user.id, payload.image_id, download_type)

    remaining = decision.downloads_remaining
    if remaining is not None and counted:
        remaining -= 1

    return DownloadRecordOut(
        success=True,
        counted=counted,
        download_type=download_type,
        downloads_remaining=remaining,
    )


@router.get("/api/downloads/stats", response_model=DownloadStatsOut)
def get_download_stats(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    stats = UsageTracker(db).all_time_stats(user.id)
    return DownloadStatsOut(
        this_month=stats.this_month,
        all_time=stats.all_time,
        last_download=stats.last_download,
    )
