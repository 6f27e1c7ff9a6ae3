# src/data/mock_repository.py
import copy
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any, Iterable, Tuple

from .connectors import DataStoreError, FilterValue
from .repositories import (
    CompanyRepository,
    CustomerRepository,
    TransactionRepository,
    ProfileRepository,
    DashboardUserRepository
)

logger = logging.getLogger(__name__)


def _split_top_level(text: str) -> List[str]:
    """按逗号拆分，忽略括号内和引号内的逗号"""
    parts, depth, current = [], 0, ''
    quoted, escaped = False, False
    for ch in text:
        if escaped:
            escaped = False
        elif quoted and ch == '\\':
            escaped = True
        elif ch == '"':
            quoted = not quoted
        elif not quoted:
            if ch == '(':
                depth += 1
            elif ch == ')':
                depth -= 1
            elif ch == ',' and depth == 0:
                parts.append(current.strip())
                current = ''
                continue
        current += ch
    if current.strip():
        parts.append(current.strip())
    return parts


def _unquote(value: str) -> str:
    """去掉 quote_value 加上的引号和转义"""
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return re.sub(r'\\(.)', r'\1', value[1:-1])
    return value


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


class InMemoryConnector:
    """内存数据源，与 SupabaseConnector.select 接口一致（用于开发和测试）"""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
                 fail_on: Optional[Iterable[str]] = None):
        self.tables = tables if tables is not None else {}
        self.fail_on = set(fail_on or [])
        self.queries: List[Tuple[str, Dict[str, Any]]] = []

    def _cell(self, row: Dict[str, Any], column: str) -> Any:
        if '->>' in column:
            parent, key = column.split('->>', 1)
            nested = row.get(parent)
            return nested.get(key) if isinstance(nested, dict) else None
        return row.get(column)

    def _matches(self, row: Dict[str, Any], column: str, op: str, value: FilterValue) -> bool:
        cell = self._cell(row, column)
        if op == 'eq':
            return cell is not None and _as_text(cell) == _as_text(value)
        if op == 'in':
            return cell is not None and _as_text(cell) in {_as_text(v) for v in value}
        raise DataStoreError(f"Unsupported filter operator: {op}")

    def _matches_or(self, row: Dict[str, Any], or_filter: str) -> bool:
        for clause in _split_top_level(or_filter):
            column, _, value = clause.partition('.eq.')
            if self._matches(row, column, 'eq', _unquote(value)):
                return True
        return False

    def _project(self, row: Dict[str, Any], columns: str) -> Dict[str, Any]:
        if columns.strip() == '*':
            return copy.deepcopy(row)

        result = {}
        for column in _split_top_level(columns):
            if '(' in column:
                # 关联资源，例如 company:company_id(name, slug)
                head, inner = column.split('(', 1)
                alias, _, fk = head.partition(':')
                fields = [c.strip() for c in inner.rstrip(')').split(',')]
                target = next(
                    (c for c in self.tables.get('companies', []) if c.get('id') == row.get(fk or alias)),
                    None
                )
                result[alias] = {f: target.get(f) for f in fields} if target else None
            else:
                result[column] = copy.deepcopy(row.get(column))
        return result

    async def select(
            self,
            table: str,
            columns: str = '*',
            filters: Optional[List[Tuple[str, str, FilterValue]]] = None,
            or_filter: Optional[str] = None,
            order: Optional[str] = None,
            limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """在内存表上执行查询"""
        self.queries.append((table, {'filters': filters, 'or': or_filter, 'order': order, 'limit': limit}))

        if table in self.fail_on:
            raise DataStoreError(f"relation \"{table}\" is unavailable")

        rows = [
            row for row in self.tables.get(table, [])
            if all(self._matches(row, c, op, v) for c, op, v in filters or [])
            and (not or_filter or self._matches_or(row, or_filter))
        ]

        if order:
            column, _, direction = order.partition('.')
            present = [r for r in rows if r.get(column) is not None]
            missing = [r for r in rows if r.get(column) is None]
            present.sort(key=lambda r: str(r[column]), reverse=(direction == 'desc'))
            rows = present + missing

        if limit is not None:
            rows = rows[:limit]

        return [self._project(row, columns) for row in rows]

    async def close(self):
        pass


def build_demo_tables(referral_code: str = "CB6aXl", product_name: str = "AI untuk UMKM",
                      now: Optional[datetime] = None) -> Dict[str, List[Dict[str, Any]]]:
    """生成演示数据（没有数据库连接时使用）"""
    now = now or datetime.now(timezone.utc)

    def iso(delta_days: float) -> str:
        return (now + timedelta(days=delta_days)).isoformat()

    customers = []
    for i in range(12):
        guid = f"demo-{i:04d}"
        if i % 3 == 0:
            subscribe = [{'product_name': product_name, 'expired_at': iso(30 - i)}]
        elif i % 3 == 1:
            subscribe = f'[{{"product_name": "{product_name}", "expired_at": "{iso(-5 - i)}"}}]'
        else:
            subscribe = "Kelas Online, Konsultasi"
        customers.append({
            'guid': guid,
            'email': f'customer{i}@example.com',
            'phone_number': f'0812000{i:04d}',
            'referal_code': referral_code,
            'full_name': f'Customer {i}',
            'username': f'customer{i}',
            'subscribe_list': subscribe,
            'created_at': iso(-60 + i)
        })

    ledger = []
    for i, customer in enumerate(customers):
        for j in range(i % 4):
            ledger.append({
                'id': f'cm-{i}-{j}',
                'user_id': customer['guid'],
                'product_name': product_name,
                'type': 'debit' if j % 2 == 0 else 'credit',
                'amount': 10 * (j + 1),
                'status': 'success',
                'created_at': iso(-(i * 4 + j))
            })

    return {
        'companies': [{
            'id': 'company-demo',
            'name': 'Demo Company',
            'slug': 'demo',
            'metadata': {'referral_code': referral_code}
        }],
        'demo_excluded_emails': [{'email': 'qa@example.com'}],
        'cms_customers': customers,
        'transactions': [
            {'customer_guid': c['guid'], 'status': 'Finished', 'valuta_code': 'IDR'}
            for c in customers[::2]
        ],
        'credit_manager_transactions': ledger,
        'profile': [],
        'dashboard_users': [],
        'app_users': []
    }


class MockCompanyRepository(CompanyRepository):
    """模拟公司数据仓库"""

    def __init__(self, db: InMemoryConnector = None):
        logger.info("Using mock company repository (no database connection)")
        super().__init__(db or InMemoryConnector(build_demo_tables()))


class MockCustomerRepository(CustomerRepository):
    """模拟客户数据仓库"""

    def __init__(self, db: InMemoryConnector = None):
        logger.info("Using mock customer repository (no database connection)")
        super().__init__(db or InMemoryConnector(build_demo_tables()))


class MockTransactionRepository(TransactionRepository):
    """模拟交易数据仓库"""

    def __init__(self, db: InMemoryConnector = None):
        logger.info("Using mock transaction repository (no database connection)")
        super().__init__(db or InMemoryConnector(build_demo_tables()))


class MockProfileRepository(ProfileRepository):
    """模拟画像数据仓库"""

    def __init__(self, db: InMemoryConnector = None):
        logger.info("Using mock profile repository (no database connection)")
        super().__init__(db or InMemoryConnector(build_demo_tables()))


class MockDashboardUserRepository(DashboardUserRepository):
    """模拟管理员数据仓库"""

    def __init__(self, db: InMemoryConnector = None):
        logger.info("Using mock dashboard user repository (no database connection)")
        super().__init__(db or InMemoryConnector(build_demo_tables()))
