from typing import Optional

from fastapi import APIRouter, Query, status

from fulfillment.tasks.inventory_tasks import replenish_low_stock

router = APIRouter(prefix="/inventory", tags=["Inventory"])


@router.post(
    "/replenish",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Trigger a replenishment scan",
    description="Queues the background scan that restocks low products, skipping rows locked by in-flight orders."
)
def trigger_replenishment(
    threshold: Optional[int] = Query(None, ge=0),
    amount: Optional[int] = Query(None, ge=1),
):
    task = replenish_low_stock.delay(threshold, amount)
    return {"task_id": task.id, "status": "queued"}
