from pydantic import BaseModel, ConfigDict, Field
from typing import List, Dict, Any, Optional


class ProductEntryResponse(BaseModel):
    """产品条目"""
    product_name: Optional[str] = None
    expired_at: Optional[str] = None


class CampaignCustomerResponse(BaseModel):
    """活动客户"""
    guid: Optional[str]
    email: Optional[str]
    full_name: Optional[str] = None
    username: Optional[str] = None
    phone: Optional[str]
    referal_code: Optional[str]
    subscribe_list: List[str]
    product_list: List[ProductEntryResponse]
    status: str = Field(..., description="active / expired / registered")
    expires_at: Optional[str]
    activity_status: str = Field(..., description="active / idle / pasif")
    last_debit_usage: Optional[str]


class CampaignSummaryResponse(BaseModel):
    """活动汇总"""
    model_config = ConfigDict(populate_by_name=True)

    registered_users: int = Field(..., alias="registeredUsers")
    active_users: int = Field(..., alias="activeUsers")
    expired_users: int = Field(..., alias="expiredUsers")
    purchasers: int
    transactions: int


class CampaignResponse(BaseModel):
    """活动看板响应"""
    model_config = ConfigDict(populate_by_name=True)

    customers: List[CampaignCustomerResponse]
    summary: CampaignSummaryResponse
    company_name: Optional[str] = Field(None, alias="companyName")


class DailyAggregateResponse(BaseModel):
    """交易日汇总"""
    product_name: str
    date: str
    total_count: int
    credit_count: int
    debit_count: int
    credit_amount: float
    debit_amount: float
    net_amount: float


class ProfileResponse(BaseModel):
    """客户详情响应"""
    profile: Dict[str, Any]
    transactions: List[Dict[str, Any]]
    daily: List[DailyAggregateResponse]


class CustomerListResponse(BaseModel):
    """用户列表响应"""
    count: int
    customers: List[Dict[str, Any]]


class DashboardUserResponse(BaseModel):
    """当前管理员"""
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    company_id: Optional[str] = None
    referral_code: Optional[str] = None
    company_slug: Optional[str] = None
    company_name: Optional[str] = None
