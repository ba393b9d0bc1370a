from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

AccessType = Literal["subscription", "purchased", "free", "blocked"]

REASON_LOGIN_REQUIRED = "login required"
REASON_LIMIT_REACHED = "monthly download limit reached"
REASON_PURCHASE_REQUIRED = "purchase required"
REASON_SUBSCRIPTION = "subscription access"
REASON_PURCHASED = "image purchased"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccessDecision(_CamelModel):
    can_view: bool
    can_download: bool
    access_type: AccessType
    reason: Optional[str] = None
    downloads_remaining: Optional[int] = None
    subscription_tier: Optional[str] = None


class DownloadRecordIn(_CamelModel):
    image_id: str


class DownloadRecordOut(_CamelModel):
    success: bool
    counted: bool
    download_type: str
    downloads_remaining: Optional[int] = None


class DownloadStatsOut(_CamelModel):
    this_month: int
    all_time: int
    last_download: Optional[datetime] = None
