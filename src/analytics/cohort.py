import logging
from typing import Iterable, List, Optional, Set

from src.data.models import CmsCustomer

logger = logging.getLogger(__name__)


def identity_key(row: CmsCustomer) -> Optional[str]:
    """去重键：guid > email > phone_number"""
    return row.guid or row.email or row.phone_number or None


def normalize_email(email: Optional[str]) -> str:
    return (email or '').strip().lower()


def filter_excluded(rows: Iterable[CmsCustomer], excluded_emails: Iterable[str]) -> List[CmsCustomer]:
    """剔除排除名单中的邮箱（不区分大小写）"""
    excluded: Set[str] = {normalize_email(e) for e in excluded_emails if normalize_email(e)}
    kept = [row for row in rows if not normalize_email(row.email) or normalize_email(row.email) not in excluded]
    return kept


def dedupe_customers(rows: Iterable[CmsCustomer]) -> List[CmsCustomer]:
    """按身份去重，保留首次出现的记录；没有任何标识的记录全部保留"""
    seen: Set[str] = set()
    result: List[CmsCustomer] = []
    anonymous = 0

    for row in rows:
        key = identity_key(row)
        if key is None:
            # 匿名记录用递增的内部键，彼此之间不去重
            seen.add(f"__anonymous_{anonymous}")
            anonymous += 1
            result.append(row)
            continue

        if key in seen:
            continue

        seen.add(key)
        result.append(row)

    logger.debug(f"Deduplicated cohort: {len(result)} kept, {anonymous} anonymous")
    return result
