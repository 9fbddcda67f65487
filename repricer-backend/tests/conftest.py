"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("SHOP_WEBHOOK_SECRET", "test-webhook-secret")

import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from repricer import models
from repricer.db import Base
from repricer.schemas import TargetProduct, TargetVariant
from repricer.services.campaign_store import CampaignStore
from repricer.services.catalog import MutationResult


def make_product(product_id: str, title: str, variants: list[tuple[str, float]]) -> TargetProduct:
    return TargetProduct(
        id=product_id,
        title=title,
        variants=[TargetVariant(id=vid, title=f"Variant {vid}", price=price) for vid, price in variants],
    )


class FakeCatalog:
    """In-process catalog that keeps prices in memory and records every mutation."""

    def __init__(self, products=None):
        self.products: list[TargetProduct] = list(products or [])
        self.failures: dict[str, list[str]] = {}
        self.raises: dict[str, Exception] = {}
        self.fetch_error: Exception | None = None
        self.calls: list[tuple[str, list[dict]]] = []
        self.targets = []
        self.collections = [{"id": "gid://shop/Collection/1", "title": "Summer"}]
        self.vendors = ["Acme"]
        self.product_types = ["Shoes"]

    async def fetch_targets(self, target):
        self.targets.append(target)
        if self.fetch_error is not None:
            raise self.fetch_error
        return [p.model_copy(deep=True) for p in self.products]

    async def update_variants(self, product_id, variants):
        inputs = [v.to_input() for v in variants]
        self.calls.append((product_id, inputs))
        if product_id in self.raises:
            raise self.raises[product_id]
        if product_id in self.failures:
            return MutationResult(False, list(self.failures[product_id]))
        product = next(p for p in self.products if p.id == product_id)
        by_id = {v.id: v for v in product.variants}
        for item in inputs:
            variant = by_id[item["id"]]
            variant.price = float(item["price"])
            if "compareAtPrice" in item:
                value = item["compareAtPrice"]
                variant.compare_at_price = float(value) if value is not None else None
        return MutationResult(True)

    async def fetch_collections(self):
        return list(self.collections)

    async def fetch_product_vendors(self):
        return list(self.vendors)

    async def fetch_product_types(self):
        return list(self.product_types)

    def price_of(self, variant_id: str) -> float:
        for product in self.products:
            for variant in product.variants:
                if variant.id == variant_id:
                    return variant.price
        raise KeyError(variant_id)

    def compare_at_of(self, variant_id: str):
        for product in self.products:
            for variant in product.variants:
                if variant.id == variant_id:
                    return variant.compare_at_price
        raise KeyError(variant_id)


class FakeBilling:
    def __init__(self, active: bool = True):
        self.active = active
        self.checks = 0

    async def has_active_subscription(self) -> bool:
        self.checks += 1
        return self.active


@dataclass
class FakeAdmin:
    catalog: FakeCatalog
    billing: FakeBilling
    opened: list = field(default_factory=list)


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture(scope="function")
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture(scope="function")
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db) -> CampaignStore:
    return CampaignStore(db)


@pytest.fixture
def tenant(db) -> models.Tenant:
    row = models.Tenant(
        id=str(uuid.uuid4()),
        shop_domain="demo-shop.myshopify.com",
        access_token="shpat_test",
        status=models.TenantStatus.active,
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(
        [
            make_product("gid://shop/Product/1", "Sneaker", [("v1", 100.0), ("v2", 19.99)]),
            make_product("gid://shop/Product/2", "Boot", [("v3", 50.0)]),
        ]
    )


@pytest.fixture
def billing() -> FakeBilling:
    return FakeBilling(active=True)


@pytest.fixture
def admin(catalog, billing) -> FakeAdmin:
    return FakeAdmin(catalog=catalog, billing=billing)


@pytest.fixture
def admin_opener(admin):
    @asynccontextmanager
    async def _open(tenant):
        admin.opened.append(tenant.id)
        yield admin

    return _open


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def product_factory():
    return make_product


@pytest.fixture
def campaign_factory(store, tenant):
    def _create(**overrides) -> models.AdjustmentCampaign:
        fields = dict(
            tenant_id=tenant.id,
            filter_type="all",
            type=models.CampaignType.percentage,
            value=10,
            strategy=models.Strategy.increase,
            rounding=models.Rounding.NONE,
            compare_at_price=False,
            status=models.CampaignStatus.processing,
        )
        fields.update(overrides)
        return store.create(**fields)

    return _create
