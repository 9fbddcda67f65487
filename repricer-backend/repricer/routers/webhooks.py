import base64
import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from repricer import models
from repricer.db import get_db, settings
from repricer.observability import log_event
from repricer.services.campaign_store import CampaignStore
from repricer.tenancy import resolve_tenant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/shop", tags=["shop-webhooks"])


def _verify_signature(raw_body: bytes, signature: str | None) -> None:
    secret = settings.shop_webhook_secret
    if not secret:
        raise HTTPException(status_code=500, detail="Webhook secret not configured")
    if not signature:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing signature")
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode()
    if not hmac.compare_digest(expected, signature.strip()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")


@router.post("/redact")
async def shop_redact(
    request: Request,
    db: Session = Depends(get_db),
    x_signature: str | None = Header(default=None, alias="X-Shopify-Hmac-Sha256"),
):
    raw_body = await request.body()
    _verify_signature(raw_body, x_signature)
    try:
        payload = json.loads(raw_body or b"{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    shop_domain = str((payload or {}).get("shop_domain") or "").strip()
    if not shop_domain:
        raise HTTPException(status_code=400, detail="shop_domain is required")

    tenant = resolve_tenant(db, tenant_id=None, shop_domain=shop_domain)
    if tenant is None:
        return {"ok": True, "purged": 0}

    purged = CampaignStore(db).purge_tenant(tenant.id)
    tenant.status = models.TenantStatus.uninstalled
    db.commit()
    log_event(logger, "tenant_purged", tenant_id=tenant.id, shop=shop_domain, campaigns=purged)
    return {"ok": True, "purged": purged}
