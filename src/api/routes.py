from fastapi import APIRouter, Query, HTTPException, Depends
from typing import Optional
import logging

from src.api.schemas import (
    CampaignResponse,
    ProfileResponse,
    CustomerListResponse,
    DashboardUserResponse
)
from src.api.dependencies import get_engine, get_current_identity, TokenIdentity
from src.api.rbac import can_access, COMPANY_ADMIN
from src.engine.core import CampaignDashboardEngine

logger = logging.getLogger(__name__)

router = APIRouter()


def _require(identity: TokenIdentity, resource: str):
    if not can_access(identity.role, resource):
        raise HTTPException(status_code=403, detail="Forbidden")


@router.get("/campaign", response_model=CampaignResponse)
async def get_campaign_dashboard(
        referral_code: Optional[str] = Query(None, alias="referralCode", description="活动推荐码"),
        product_name: Optional[str] = Query(None, alias="productName", description="目标产品名"),
        identity: TokenIdentity = Depends(get_current_identity),
        engine: CampaignDashboardEngine = Depends(get_engine)
):
    """获取活动看板：客户订阅状态、活跃度和汇总指标"""
    _require(identity, "analytics")

    try:
        result = await engine.get_campaign_dashboard(referral_code, product_name)
        return result.to_dict()
    except Exception as e:
        logger.error(f"Failed to build campaign dashboard: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/profile", response_model=ProfileResponse)
async def get_customer_profile(
        guid: Optional[str] = Query(None, description="客户guid"),
        limit: Optional[int] = Query(None, ge=1, le=1000, description="流水条数"),
        identity: TokenIdentity = Depends(get_current_identity),
        engine: CampaignDashboardEngine = Depends(get_engine)
):
    """获取客户画像、积分流水和按天汇总"""
    _require(identity, "analytics")

    if not guid:
        raise HTTPException(status_code=400, detail="guid is required")

    try:
        detail = await engine.get_customer_detail(guid, limit)
    except Exception as e:
        logger.error(f"Failed to load customer detail: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    if detail is None:
        raise HTTPException(status_code=404, detail="Profile not found")

    return detail.to_dict()


@router.get("/customers", response_model=CustomerListResponse)
async def list_customers(
        referral_code: Optional[str] = Query(None, alias="referralCode"),
        company_id: Optional[str] = Query(None, alias="companyId"),
        identity: TokenIdentity = Depends(get_current_identity),
        engine: CampaignDashboardEngine = Depends(get_engine)
):
    """列出用户；公司管理员只能看到自己公司的用户"""
    _require(identity, "users")

    try:
        if identity.role == COMPANY_ADMIN:
            target_company_id = identity.company_id
            if not target_company_id:
                raise HTTPException(status_code=400, detail="Company is not assigned to this account.")
        elif company_id:
            target_company_id = company_id
        elif referral_code:
            target_company_id = await engine.resolve_company_id(referral_code)
            if not target_company_id:
                raise HTTPException(status_code=404, detail="Referral code not found.")
        else:
            target_company_id = None

        return await engine.list_customers(target_company_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to load customers: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/me", response_model=DashboardUserResponse)
async def get_me(
        identity: TokenIdentity = Depends(get_current_identity),
        engine: CampaignDashboardEngine = Depends(get_engine)
):
    """获取当前管理员及其公司信息"""
    try:
        user = await engine.get_dashboard_user(identity.sub)
    except Exception as e:
        logger.error(f"Failed to load dashboard user: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    if not user:
        raise HTTPException(status_code=404, detail="Profile not found.")

    return user
