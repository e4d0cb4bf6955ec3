from fastapi import APIRouter, Depends, HTTPException, Response
from typing import List, Optional
from uuid import UUID

from pipewatch.src.models.run import SubscriptionCreate, SubscriptionResponse, SubscriptionUpdate
from pipewatch.src.routes.deps import get_engine
from pipewatch.src.services.engine import ReconciliationEngine

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])

@router.get("", response_model=List[SubscriptionResponse])
async def list_subscriptions(
    pipeline_id: Optional[UUID] = None,
    engine: ReconciliationEngine = Depends(get_engine),
):
    """List subscriptions; with pipeline_id, those that apply to that pipeline."""
    return await engine.pipelines.list_subscriptions(pipeline_id)

@router.post("", response_model=SubscriptionResponse, status_code=201)
async def create_subscription(request: SubscriptionCreate, engine: ReconciliationEngine = Depends(get_engine)):
    if request.pipeline_id is not None and not await engine.pipelines.get(request.pipeline_id):
        raise HTTPException(status_code=404, detail="Pipeline not found")
    return await engine.pipelines.add_subscription(**request.model_dump())

@router.patch("/{subscription_id}", response_model=SubscriptionResponse)
async def update_subscription(
    subscription_id: UUID,
    request: SubscriptionUpdate,
    engine: ReconciliationEngine = Depends(get_engine),
):
    subscription = await engine.pipelines.update_subscription(subscription_id, **request.model_dump())
    if not subscription:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return subscription

@router.delete("/{subscription_id}", status_code=204)
async def delete_subscription(subscription_id: UUID, engine: ReconciliationEngine = Depends(get_engine)):
    if not await engine.pipelines.remove_subscription(subscription_id):
        raise HTTPException(status_code=404, detail="Subscription not found")
    return Response(status_code=204)
