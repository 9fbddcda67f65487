from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator

from fastapi import Depends, Header, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from repricer import models
from repricer.db import get_db
from repricer.services.shop_admin import ShopAdmin, open_shop_admin


@dataclass(frozen=True, slots=True)
class TenantContext:
    id: str
    shop_domain: str


def resolve_tenant(db: Session, tenant_id: str | None, shop_domain: str | None) -> models.Tenant | None:
    query = db.query(models.Tenant)
    if tenant_id:
        return query.filter(models.Tenant.id == tenant_id).first()
    if shop_domain:
        domain = shop_domain.strip().lower()
        if domain:
            return query.filter(func.lower(models.Tenant.shop_domain) == domain).first()
    return None


def get_tenant(
    db: Session = Depends(get_db),
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_shop_domain: str | None = Header(default=None, alias="X-Shop-Domain"),
) -> models.Tenant:
    tenant = resolve_tenant(db, tenant_id=x_tenant_id, shop_domain=x_shop_domain)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Shop not found")
    if tenant.status is not models.TenantStatus.active:
        raise HTTPException(status_code=403, detail="Shop is not active")
    return tenant


def get_tenant_context(tenant: models.Tenant = Depends(get_tenant)) -> TenantContext:
    return TenantContext(id=tenant.id, shop_domain=tenant.shop_domain)


async def get_shop_admin(tenant: models.Tenant = Depends(get_tenant)) -> AsyncIterator[ShopAdmin]:
    async with open_shop_admin(tenant) as admin:
        yield admin
