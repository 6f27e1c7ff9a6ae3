# src/engine/core.py
import asyncio
import logging
from typing import Dict, Any, List, Optional
from datetime import datetime

from ..analytics.classifiers import (
    compute_status,
    compute_activity,
    STATUS_ACTIVE,
    STATUS_EXPIRED
)
from ..analytics.cohort import dedupe_customers, filter_excluded
from ..analytics.normalizer import normalize_name
from ..analytics.transactions import aggregate_daily
from ..analytics.utility import ensure_utc
from ..data.models import (
    CampaignCustomer,
    CampaignSummary,
    CampaignResult,
    CustomerDetail
)

logger = logging.getLogger(__name__)


def get_repository(repo_class, mock_class, fallback_db=None):
    """获取数据仓库（如果没有配置数据源则使用内存数据）"""
    try:
        return repo_class()
    except ConnectionError as e:
        logger.warning(f"Data store unavailable, using in-memory data: {e}")
        return mock_class(fallback_db)


def latest_usage_by_user(rows: List[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    """按时间倒序的扣减记录中，每个用户取第一条"""
    latest: Dict[str, Optional[str]] = {}
    for row in rows:
        user_id = row.get('user_id')
        if not user_id or user_id in latest:
            continue
        latest[user_id] = row.get('created_at')
    return latest


class CampaignDashboardEngine:
    """活动看板核心引擎"""

    def __init__(
            self,
            company_repo=None,
            customer_repo=None,
            transaction_repo=None,
            profile_repo=None,
            dashboard_user_repo=None,
            settings=None
    ):
        from ..data.repositories import (
            CompanyRepository,
            CustomerRepository,
            TransactionRepository,
            ProfileRepository,
            DashboardUserRepository
        )
        from ..data.mock_repository import (
            InMemoryConnector,
            build_demo_tables,
            MockCompanyRepository,
            MockCustomerRepository,
            MockTransactionRepository,
            MockProfileRepository,
            MockDashboardUserRepository
        )

        if settings is None:
            from config.settings import get_settings
            settings = get_settings()
        self.campaign_config = settings.campaign

        # 所有模拟仓库共用一份内存数据
        demo_db = InMemoryConnector(build_demo_tables(
            self.campaign_config.referral_code,
            self.campaign_config.product_name
        ))

        self.company_repo = company_repo or get_repository(CompanyRepository, MockCompanyRepository, demo_db)
        self.customer_repo = customer_repo or get_repository(CustomerRepository, MockCustomerRepository, demo_db)
        self.transaction_repo = transaction_repo or get_repository(
            TransactionRepository, MockTransactionRepository, demo_db)
        self.profile_repo = profile_repo or get_repository(ProfileRepository, MockProfileRepository, demo_db)
        self.dashboard_user_repo = dashboard_user_repo or get_repository(
            DashboardUserRepository, MockDashboardUserRepository, demo_db)

    async def get_campaign_dashboard(
            self,
            referral_code: Optional[str] = None,
            product_name: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> CampaignResult:
        """计算某个推荐码下客户的订阅状态、活跃度以及汇总指标"""
        referral_code = referral_code or self.campaign_config.referral_code
        target = normalize_name(product_name or self.campaign_config.product_name)
        now = ensure_utc(now)

        logger.info(f"Building campaign dashboard for referral code {referral_code}")

        # 1. 公司
        company = await self.company_repo.get_by_referral_code(referral_code)
        company_name = company.name if company else None

        # 2-4. 排除名单、客户、去重
        excluded = await self.customer_repo.get_excluded_emails()
        rows = await self.customer_repo.get_campaign_cohort(referral_code)
        cohort = dedupe_customers(filter_excluded(rows, excluded))
        logger.info(f"Cohort loaded: {len(rows)} rows, {len(cohort)} after exclusion and dedupe")

        # 5. 订阅状态
        customers: List[CampaignCustomer] = []
        unique_guids: List[str] = []
        seen_guids = set()
        active_users = 0
        expired_users = 0

        for row in cohort:
            result = compute_status(row, now, target)

            if row.guid:
                if row.guid not in seen_guids:
                    seen_guids.add(row.guid)
                    unique_guids.append(row.guid)
                if result.status == STATUS_ACTIVE:
                    active_users += 1
                elif result.status == STATUS_EXPIRED:
                    expired_users += 1

            customers.append(CampaignCustomer(
                guid=row.guid,
                email=row.email,
                full_name=row.full_name,
                username=row.username,
                phone=row.phone_number,
                referal_code=row.referal_code,
                subscribe_list=result.subscribe_list,
                product_list=result.product_list,
                status=result.status,
                expires_at=result.expires_at
            ))

        # 6. 交易与最近扣减
        purchasers = 0
        transactions = 0
        last_debit: Dict[str, Optional[str]] = {}

        if unique_guids:
            txns = await self.transaction_repo.get_finished_transactions(
                unique_guids, self.campaign_config.transaction_currency)
            transactions = len(txns)
            purchasers = len({row.get('customer_guid') for row in txns if row.get('customer_guid')})

            usage_rows = await self.transaction_repo.get_debit_usage(unique_guids)
            last_debit = latest_usage_by_user(usage_rows)

        # 7. 活跃度
        for customer in customers:
            usage = last_debit.get(customer.guid) if customer.guid else None
            activity = compute_activity(usage, now)
            customer.activity_status = activity.activity
            customer.last_debit_usage = activity.last_usage

        summary = CampaignSummary(
            registered_users=len(unique_guids),
            active_users=active_users,
            expired_users=expired_users,
            purchasers=purchasers,
            transactions=transactions
        )
        logger.info(f"Campaign summary: {summary.to_dict()}")

        return CampaignResult(customers=customers, summary=summary, company_name=company_name)

    async def get_customer_detail(self, guid: str, limit: Optional[int] = None) -> Optional[CustomerDetail]:
        """获取客户画像、积分流水和日汇总；找不到客户时返回None"""
        limit = limit or self.campaign_config.profile_transaction_limit

        # 画像和流水互不依赖，并发获取；两个都结束后再抛出第一个错误
        results = await asyncio.gather(
            self.profile_repo.get_latest_by_guid(guid),
            self.transaction_repo.get_transactions_by_user(guid, limit),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        profile, transactions = results

        is_fallback = False
        if profile is None:
            # 没有画像时用 cms_customers 里的邮箱拼一个最小画像
            email = await self.customer_repo.get_email_by_guid(guid)
            if not email:
                logger.info(f"No profile found for customer {guid}")
                return None
            profile = {
                'id': guid,
                'customer_guid': guid,
                'full_name': None,
                'username': None,
                'email': email,
                'phone': None,
                'created_at': None
            }
            is_fallback = True

        return CustomerDetail(
            profile=profile,
            transactions=transactions,
            daily=aggregate_daily(transactions),
            is_fallback_profile=is_fallback
        )

    async def get_dashboard_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """获取管理员信息并补充公司的推荐码、slug和名称"""
        user = await self.dashboard_user_repo.get_by_id(user_id)
        if not user:
            return None

        referral_code = None
        company_slug = None
        company_name = None
        if user.get('company_id'):
            company = await self.company_repo.get_by_id(user['company_id'])
            if company:
                referral_code = company.referral_code
                company_slug = company.slug
                company_name = company.name

        return {
            **user,
            'referral_code': referral_code,
            'company_slug': company_slug,
            'company_name': company_name
        }

    async def list_customers(self, company_id: Optional[str] = None) -> Dict[str, Any]:
        """列出应用用户（可按公司过滤）"""
        customers = await self.customer_repo.get_app_users(company_id)
        return {'count': len(customers), 'customers': customers}

    async def resolve_company_id(self, code: str) -> Optional[str]:
        """将slug或推荐码解析为公司ID"""
        company = await self.company_repo.find_by_slug_or_referral_code(code)
        return company.id if company else None

    async def close(self):
        """关闭各仓库的连接"""
        closed = set()
        for repo in (self.company_repo, self.customer_repo, self.transaction_repo,
                     self.profile_repo, self.dashboard_user_repo):
            db = getattr(repo, 'db', None)
            if db is not None and id(db) not in closed:
                closed.add(id(db))
                await db.close()
