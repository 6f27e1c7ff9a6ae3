import logging
import math
from numbers import Number
from typing import Any, Dict, List, Optional

import pandas as pd

from src.data.models import DailyAggregate
from .utility import parse_timestamp

logger = logging.getLogger(__name__)

UNKNOWN_PRODUCT = '-'


def _to_amount(value: Any) -> Optional[float]:
    """金额转为数字，非数字返回None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Number):
        amount = float(value)
    elif isinstance(value, str):
        try:
            amount = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return amount if math.isfinite(amount) else None


def aggregate_daily(transactions: List[Dict[str, Any]]) -> List[DailyAggregate]:
    """按 (产品, 日期) 汇总交易流水，日期倒序、同一天内产品名正序"""
    records = []
    for txn in transactions:
        created_at = parse_timestamp(txn.get('created_at'))
        if created_at is None:
            continue
        product_name = txn.get('product_name')
        records.append({
            'product_name': str(product_name) if product_name is not None else UNKNOWN_PRODUCT,
            'date': created_at.date().isoformat(),
            'amount': _to_amount(txn.get('amount')),
            'is_credit': str(txn.get('type') or '').lower() == 'credit'
        })

    if not records:
        return []

    df = pd.DataFrame(records)
    df['amount'] = df['amount'].astype(float)

    numeric = df['amount'].notna()
    credit = numeric & df['is_credit']
    debit = numeric & ~df['is_credit']

    df['credit_count'] = credit.astype(int)
    df['debit_count'] = debit.astype(int)
    df['credit_amount'] = df['amount'].where(credit, 0.0)
    df['debit_amount'] = df['amount'].where(debit, 0.0)

    daily = df.groupby(['product_name', 'date'], sort=False).agg(
        total_count=('amount', 'size'),
        credit_count=('credit_count', 'sum'),
        debit_count=('debit_count', 'sum'),
        credit_amount=('credit_amount', 'sum'),
        debit_amount=('debit_amount', 'sum')
    ).reset_index()
    daily['net_amount'] = daily['credit_amount'] - daily['debit_amount']

    # 同一天内产品名不区分大小写排序
    daily = daily.sort_values(
        ['date', 'product_name'],
        ascending=[False, True],
        kind='stable',
        key=lambda col: col.str.casefold()
    )

    logger.debug(f"Aggregated {len(records)} transactions into {len(daily)} daily buckets")

    return [
        DailyAggregate(
            product_name=row.product_name,
            date=row.date,
            total_count=int(row.total_count),
            credit_count=int(row.credit_count),
            debit_count=int(row.debit_count),
            credit_amount=float(row.credit_amount),
            debit_amount=float(row.debit_amount),
            net_amount=float(row.net_amount)
        )
        for row in daily.itertuples(index=False)
    ]
