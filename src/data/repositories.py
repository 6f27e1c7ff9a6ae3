import logging
from typing import List, Optional, Dict, Any

from .connectors import SupabaseConnector, DataStoreError, quote_value
from .models import Company, CmsCustomer

logger = logging.getLogger(__name__)

FINISHED_STATUS = "Finished"
DEBIT_TYPE = "debit"


class BaseRepository:
    """基础数据仓库类"""

    def __init__(self, db: SupabaseConnector = None):
        self.db = db or SupabaseConnector()

    async def _fetch(self, action: str, table: str, **query) -> List[Dict[str, Any]]:
        """查询并把失败包装成带步骤说明的错误"""
        try:
            return await self.db.select(table, **query)
        except DataStoreError as e:
            raise DataStoreError(f"Failed to {action}: {e}") from e


class CompanyRepository(BaseRepository):
    """公司数据仓库"""

    async def get_by_referral_code(self, referral_code: str) -> Optional[Company]:
        """根据 metadata.referral_code 查找公司"""
        rows = await self._fetch(
            "lookup company for referral code", "companies",
            columns="id, name",
            filters=[("metadata->>referral_code", "eq", referral_code)],
            limit=1
        )
        return Company.from_row(rows[0]) if rows else None

    async def find_by_slug_or_referral_code(self, code: str) -> Optional[Company]:
        """按slug或referral_code查找公司"""
        # 用户输入可能带逗号或括号，加引号后再拼进 or 表达式
        value = quote_value(code)
        rows = await self._fetch(
            "resolve referral code", "companies",
            columns="id, name, slug",
            or_filter=f"slug.eq.{value},metadata->>referral_code.eq.{value}",
            limit=1
        )
        return Company.from_row(rows[0]) if rows else None

    async def get_by_id(self, company_id: str) -> Optional[Company]:
        """根据ID获取公司"""
        rows = await self._fetch(
            "load company", "companies",
            columns="id, name, slug, metadata",
            filters=[("id", "eq", company_id)],
            limit=1
        )
        return Company.from_row(rows[0]) if rows else None


class CustomerRepository(BaseRepository):
    """客户数据仓库"""

    async def get_excluded_emails(self) -> List[str]:
        """获取需要排除的演示邮箱"""
        rows = await self._fetch("load excluded emails", "demo_excluded_emails", columns="email")
        return [row.get('email') for row in rows if row.get('email')]

    async def get_campaign_cohort(self, referral_code: str) -> List[CmsCustomer]:
        """获取某个推荐码下的全部客户"""
        rows = await self._fetch(
            "load campaign cohort", "cms_customers",
            columns="guid, email, phone_number, referal_code, full_name, username, subscribe_list",
            filters=[("referal_code", "eq", referral_code)]
        )
        return [CmsCustomer.from_row(row) for row in rows]

    async def get_email_by_guid(self, guid: str) -> Optional[str]:
        """获取客户最新的邮箱"""
        if not guid:
            return None
        rows = await self._fetch(
            "fetch cms customer email", "cms_customers",
            columns="email",
            filters=[("guid", "eq", guid)],
            order="created_at.desc",
            limit=1
        )
        return rows[0].get('email') if rows else None

    async def get_app_users(self, company_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """获取应用用户列表（可按公司过滤）"""
        filters = [("company_id", "eq", company_id)] if company_id else None
        return await self._fetch(
            "load customers", "app_users",
            columns="id, full_name, email, profile_data, company:company_id(name, slug)",
            filters=filters
        )


class TransactionRepository(BaseRepository):
    """交易数据仓库"""

    async def get_finished_transactions(self, guids: List[str], currency: str = "IDR") -> List[Dict[str, Any]]:
        """获取已完成的交易（只返回 customer_guid）"""
        if not guids:
            return []
        return await self._fetch(
            "load transactions", "transactions",
            columns="customer_guid",
            filters=[
                ("status", "eq", FINISHED_STATUS),
                ("valuta_code", "eq", currency),
                ("customer_guid", "in", guids)
            ]
        )

    async def get_debit_usage(self, user_ids: List[str]) -> List[Dict[str, Any]]:
        """获取积分扣减记录，按时间倒序"""
        if not user_ids:
            return []
        return await self._fetch(
            "load debit usage", "credit_manager_transactions",
            columns="user_id, created_at",
            filters=[("type", "eq", DEBIT_TYPE), ("user_id", "in", user_ids)],
            order="created_at.desc"
        )

    async def get_transactions_by_user(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """获取单个用户的积分流水"""
        if not user_id:
            return []
        return await self._fetch(
            "fetch transactions", "credit_manager_transactions",
            filters=[("user_id", "eq", user_id)],
            order="created_at.desc",
            limit=limit
        )


class ProfileRepository(BaseRepository):
    """客户画像数据仓库"""

    async def get_latest_by_guid(self, customer_guid: str) -> Optional[Dict[str, Any]]:
        """获取客户最新的画像"""
        if not customer_guid:
            return None
        rows = await self._fetch(
            "fetch profile", "profile",
            filters=[("customer_guid", "eq", customer_guid)],
            order="created_at.desc",
            limit=1
        )
        return rows[0] if rows else None


class DashboardUserRepository(BaseRepository):
    """看板管理员数据仓库"""

    async def get_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        """根据ID获取管理员"""
        rows = await self._fetch(
            "load dashboard user", "dashboard_users",
            columns="id, email, full_name, role, company_id",
            filters=[("id", "eq", user_id)],
            limit=1
        )
        return rows[0] if rows else None
