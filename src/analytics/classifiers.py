import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from src.data.models import CmsCustomer, ProductEntry
from .normalizer import normalize_name, to_subscribe_list, to_product_list
from .utility import parse_timestamp, to_iso, ensure_utc

logger = logging.getLogger(__name__)

STATUS_ACTIVE = 'active'
STATUS_EXPIRED = 'expired'
STATUS_REGISTERED = 'registered'

ACTIVITY_ACTIVE = 'active'
ACTIVITY_IDLE = 'idle'
ACTIVITY_PASIF = 'pasif'

# 最近一次扣减距今的天数阈值
ACTIVE_WITHIN_DAYS = 7
IDLE_WITHIN_DAYS = 30

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class StatusResult:
    """订阅状态判定结果"""
    status: str
    expires_at: Optional[str]
    subscribe_list: List[str] = field(default_factory=list)
    product_list: List[ProductEntry] = field(default_factory=list)


@dataclass
class ActivityResult:
    """活跃度判定结果"""
    activity: str
    last_usage: Optional[str]


def compute_status(customer: CmsCustomer, now: datetime, target_product_name: str) -> StatusResult:
    """判定客户对目标产品的订阅状态（active / expired / registered）"""
    now = ensure_utc(now)
    target = normalize_name(target_product_name)

    subscribe_list = to_subscribe_list(customer.subscribe_list)
    source = customer.product_list if customer.product_list is not None else customer.subscribe_list
    product_list = to_product_list(source)

    subscribed = any(normalize_name(item) == target for item in subscribe_list)
    matched = [entry for entry in product_list if normalize_name(entry.name) == target]

    expiries = [parse_timestamp(entry.expired_at) for entry in matched if entry.expired_at]
    expiries = [dt for dt in expiries if dt is not None]

    has_expired = any(dt < now for dt in expiries)
    # 没有任何可解析的到期时间时不算 active
    all_future = len(expiries) > 0 and all(dt >= now for dt in expiries)

    last_expiry = matched[-1].expired_at if matched else None

    if subscribed and all_future:
        return StatusResult(STATUS_ACTIVE, last_expiry, subscribe_list, product_list)

    if subscribed and has_expired:
        return StatusResult(STATUS_EXPIRED, last_expiry, subscribe_list, product_list)

    return StatusResult(STATUS_REGISTERED, None, subscribe_list, product_list)


def compute_activity(last_usage: Any, now: datetime) -> ActivityResult:
    """根据最近一次扣减时间判定活跃度（active / idle / pasif）"""
    if not last_usage:
        return ActivityResult(ACTIVITY_PASIF, None)

    dt = parse_timestamp(last_usage)
    if dt is None:
        logger.debug(f"Unparseable usage timestamp: {last_usage!r}")
        return ActivityResult(ACTIVITY_PASIF, None)

    elapsed_days = (ensure_utc(now) - dt).total_seconds() / SECONDS_PER_DAY

    if elapsed_days < ACTIVE_WITHIN_DAYS:
        return ActivityResult(ACTIVITY_ACTIVE, to_iso(dt))
    if elapsed_days <= IDLE_WITHIN_DAYS:
        return ActivityResult(ACTIVITY_IDLE, to_iso(dt))
    return ActivityResult(ACTIVITY_PASIF, to_iso(dt))
