"""API依赖项"""
import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException

logger = logging.getLogger(__name__)

# 全局引擎实例（由app.py在启动时设置）
_engine = None


@dataclass
class TokenIdentity:
    """令牌中携带的管理员身份"""
    sub: str
    role: str
    company_id: Optional[str] = None


def set_engine(engine):
    """设置引擎实例（由app.py在启动时调用）"""
    global _engine
    _engine = engine


def get_engine():
    """获取引擎实例的依赖函数"""
    if not _engine:
        logger.error("Engine not initialized")
        raise HTTPException(status_code=503, detail="Engine not available")
    return _engine


def get_auth_config():
    """令牌校验配置"""
    from config.settings import get_settings
    return get_settings().auth


def get_current_identity(
        authorization: Optional[str] = Header(None),
        auth_config=Depends(get_auth_config)
) -> TokenIdentity:
    """校验 Bearer 令牌并返回身份"""
    token = authorization[7:] if authorization and authorization.startswith("Bearer ") else None
    if not token or not auth_config.jwt_secret:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = jwt.decode(token, auth_config.jwt_secret, algorithms=[auth_config.jwt_algorithm])
    except jwt.PyJWTError as e:
        logger.info(f"Rejected token: {e}")
        raise HTTPException(status_code=401, detail="Unauthorized")

    if not payload.get('sub'):
        raise HTTPException(status_code=401, detail="Unauthorized")

    return TokenIdentity(
        sub=str(payload['sub']),
        role=str(payload.get('role') or ''),
        company_id=payload.get('company_id')
    )
