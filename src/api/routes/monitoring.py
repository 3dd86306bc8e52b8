"""Monitoring API — competitor price checks, price history and monitoring tasks."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from pydantic import Field

from api.dependencies import get_services
from api.schemas import CamelModel, ProductMatchOut, UserProductIn
from core.errors import InvalidRequestError
from workers.price_monitor.models import TrackedProduct
from workers.services import PipelineServices

router = APIRouter(prefix="/api/monitoring", tags=["monitoring"])


# ── Schemas ───────────────────────────────────────────────────────────

class MonitorPricesRequest(CamelModel):
    competitor_domain: str
    user_products: list[UserProductIn]


class PriceHistoryEntryOut(CamelModel):
    date: str
    price: float
    change: float | None


class PriceHistoryOut(CamelModel):
    current: float | None
    history: list[PriceHistoryEntryOut]


class TrackedProductSchema(CamelModel):
    name: str
    url: str | None = None
    price: float | None = None
    currency: str | None = None
    id: str | None = None

    def to_domain(self) -> TrackedProduct:
        return TrackedProduct(name=self.name, url=self.url, price=self.price, currency=self.currency, id=self.id)


class CreateTaskRequest(CamelModel):
    user_id: str
    competitor_domain: str
    product_urls: list[TrackedProductSchema] = Field(default_factory=list)
    frequency: str
    enabled: bool = True
    discovery_source: str = "discovery"


class UpdateTaskRequest(CamelModel):
    enabled: bool | None = None
    frequency: str | None = None
    product_urls: list[TrackedProductSchema] | None = None
    status: str | None = None


class MonitoringTaskOut(CamelModel):
    id: str
    user_id: str
    competitor_domain: str
    product_urls: list[TrackedProductSchema]
    frequency: str
    enabled: bool
    status: str
    discovery_source: str
    last_run: datetime | None
    next_run: datetime | None
    created_at: datetime | None
    updated_at: datetime | None


# ── Prices ────────────────────────────────────────────────────────────

@router.post("/prices", response_model=list[ProductMatchOut])
async def monitor_competitor_prices(body: MonitorPricesRequest, services: PipelineServices = Depends(get_services)):
    """Current competitor prices for the caller's products."""
    if not body.competitor_domain.strip():
        raise InvalidRequestError("competitorDomain is required")
    matches = await services.monitor.monitor_competitor_prices(
        body.competitor_domain.strip(),
        [p.to_domain() for p in body.user_products],
    )
    return [ProductMatchOut.model_validate(m) for m in matches]


@router.get("/price-history", response_model=PriceHistoryOut)
async def track_price_history(
    product_url: str = Query(..., min_length=1),
    services: PipelineServices = Depends(get_services),
):
    """Current price of a product page plus its recorded history."""
    history = await services.monitor.track_price_history(product_url)
    return PriceHistoryOut.model_validate(history)


# ── Tasks ─────────────────────────────────────────────────────────────

@router.post("/tasks", response_model=MonitoringTaskOut, status_code=201)
async def create_monitoring_task(body: CreateTaskRequest, services: PipelineServices = Depends(get_services)):
    task = await services.tasks.create(
        body.user_id,
        body.competitor_domain,
        [p.to_domain() for p in body.product_urls],
        body.frequency,
        enabled=body.enabled,
        discovery_source=body.discovery_source,
    )
    return MonitoringTaskOut.model_validate(task)


@router.patch("/tasks/{task_id}", response_model=MonitoringTaskOut)
async def update_monitoring_task(
    task_id: str,
    body: UpdateTaskRequest,
    services: PipelineServices = Depends(get_services),
):
    task = await services.tasks.update(
        task_id,
        enabled=body.enabled,
        frequency=body.frequency,
        product_urls=[p.to_domain() for p in body.product_urls] if body.product_urls is not None else None,
        status=body.status,
    )
    return MonitoringTaskOut.model_validate(task)


@router.delete("/tasks/{task_id}", status_code=204)
async def remove_monitoring_task(task_id: str, services: PipelineServices = Depends(get_services)) -> Response:
    await services.tasks.remove(task_id)
    return Response(status_code=204)


@router.get("/tasks", response_model=list[MonitoringTaskOut])
async def get_user_monitoring_tasks(
    user_id: str = Query(..., min_length=1),
    services: PipelineServices = Depends(get_services),
):
    """Tasks of one user, newest first."""
    return [MonitoringTaskOut.model_validate(t) for t in await services.tasks.list_by_user(user_id)]
