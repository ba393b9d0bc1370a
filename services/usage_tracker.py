# services/usage_tracker.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.image_download import ImageDownload
from utils.db_upsert import insert_if_absent

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DOWNLOAD_TYPES = ("subscription", "purchase", "free")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def month_key(ts: datetime) -> tuple[int, int]:
    """(year, month) of *ts* in UTC. Naive datetimes are taken as UTC."""
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.year, ts.month


@dataclass
class DownloadStats:
    this_month: int
    all_time: int
    last_download: Optional[datetime] = None


class UsageTracker:
    """Records downloads and answers month-to-date / all-time counts."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or utcnow

    def record_download(self, user_id: str, image_id: str, download_type: str = "subscription") -> bool:
        """Record a download for the current month.

        Returns True if a new row was written, False if this image was already
        counted for the user this month.
        """
        if download_type not in DOWNLOAD_TYPES:
            raise ValueError(f"Invalid download type: {download_type}")

        now = self.clock()
        year, month = month_key(now)
        created = insert_if_absent(
            self.db,
            ImageDownload,
            {
                "user_id": user_id,
                "image_id": image_id,
                "downloaded_at": now,
                "download_type": download_type,
                "download_year": year,
                "download_month": month,
            },
            conflict_columns=("user_id", "image_id", "download_year", "download_month"),
        )
        self.db.commit()

        if created:
            logger.info("download_recorded user_id=%s image_id=%s type=%s", user_id, image_id, download_type)
        else:
            logger.info("download_already_counted user_id=%s image_id=%s", user_id, image_id)
        return created

    def month_to_date_count(self, user_id: str) -> int:
        year, month = month_key(self.clock())
        return (
            self.db.query(func.count(ImageDownload.id))
            .filter(
                ImageDownload.user_id == user_id,
                ImageDownload.download_year == year,
                ImageDownload.download_month == month,
            )
            .scalar()
            or 0
        )

    def all_time_stats(self, user_id: str) -> DownloadStats:
        total, last = (
            self.db.query(func.count(ImageDownload.id), func.max(ImageDownload.downloaded_at))
            .filter(ImageDownload.user_id == user_id)
            .one()
        )
        return DownloadStats(
            this_month=self.month_to_date_count(user_id),
            all_time=total or 0,
            last_download=last,
        )
