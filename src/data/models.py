from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field, fields, asdict


def _known_fields(cls, row: Dict[str, Any]) -> Dict[str, Any]:
    """只保留模型声明过的列"""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in row.items() if k in names}


@dataclass
class Company:
    """公司模型"""
    id: str
    name: Optional[str] = None
    slug: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Company":
        return cls(**_known_fields(cls, row))

    @property
    def referral_code(self) -> Optional[str]:
        if isinstance(self.metadata, dict):
            return self.metadata.get('referral_code')
        return None


@dataclass
class CmsCustomer:
    """CMS客户原始记录（subscribe_list / product_list 形态不固定）"""
    guid: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    referal_code: Optional[str] = None
    full_name: Optional[str] = None
    username: Optional[str] = None
    subscribe_list: Any = None
    product_list: Any = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CmsCustomer":
        return cls(**_known_fields(cls, row))


@dataclass
class ProductEntry:
    """标准化后的产品条目"""
    name: Optional[str] = None
    expired_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'product_name': self.name, 'expired_at': self.expired_at}


@dataclass
class CampaignCustomer:
    """活动客户（看板输出记录）"""
    guid: Optional[str]
    email: Optional[str]
    full_name: Optional[str]
    username: Optional[str]
    phone: Optional[str]
    referal_code: Optional[str]
    subscribe_list: List[str] = field(default_factory=list)
    product_list: List[ProductEntry] = field(default_factory=list)
    status: str = 'registered'
    expires_at: Optional[str] = None
    activity_status: str = 'pasif'
    last_debit_usage: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['product_list'] = [entry.to_dict() for entry in self.product_list]
        return data


@dataclass
class CampaignSummary:
    """活动汇总指标"""
    registered_users: int = 0
    active_users: int = 0
    expired_users: int = 0
    purchasers: int = 0
    transactions: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'registeredUsers': self.registered_users,
            'activeUsers': self.active_users,
            'expiredUsers': self.expired_users,
            'purchasers': self.purchasers,
            'transactions': self.transactions
        }


@dataclass
class CampaignResult:
    """活动看板结果"""
    customers: List[CampaignCustomer]
    summary: CampaignSummary
    company_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'customers': [c.to_dict() for c in self.customers],
            'summary': self.summary.to_dict(),
            'companyName': self.company_name
        }


@dataclass
class DailyAggregate:
    """按产品、按天的交易汇总"""
    product_name: str
    date: str  # YYYY-MM-DD
    total_count: int = 0
    credit_count: int = 0
    debit_count: int = 0
    credit_amount: float = 0.0
    debit_amount: float = 0.0
    net_amount: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CustomerDetail:
    """单个客户详情：画像 + 交易流水 + 日汇总"""
    profile: Dict[str, Any]
    transactions: List[Dict[str, Any]]
    daily: List[DailyAggregate]
    is_fallback_profile: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'profile': self.profile,
            'transactions': self.transactions,
            'daily': [d.to_dict() for d in self.daily]
        }
