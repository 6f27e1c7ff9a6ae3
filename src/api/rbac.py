from typing import Dict, List

SUPER_ADMIN = "super_admin"
COMPANY_ADMIN = "company_admin"

# 各角色可访问的看板模块
ROLE_PERMISSIONS: Dict[str, List[str]] = {
    SUPER_ADMIN: [
        "overview",
        "companies",
        "users",
        "analytics",
        "surveys",
        "settings",
        "activity_logs",
    ],
    COMPANY_ADMIN: ["overview", "users", "analytics", "surveys"],
}


def can_access(role: str, resource: str) -> bool:
    """判断角色能否访问某个看板模块"""
    return resource.lower() in ROLE_PERMISSIONS.get(role, [])
