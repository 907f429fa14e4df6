"""
Request tenancy helpers.

Authentication is handled in front of this service; requests arrive with the
tenant and acting user already resolved into headers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException


@dataclass
class TenantContext:
    tenant_id: str
    user_id: Optional[str] = None


def get_tenant_context(
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> TenantContext:
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(status_code=400, detail="X-Tenant-Id header is required")
    user_id = (x_user_id or "").strip() or None
    return TenantContext(tenant_id=tenant_id, user_id=user_id)
