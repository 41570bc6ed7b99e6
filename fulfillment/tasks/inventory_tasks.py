import logging

from sqlalchemy.exc import OperationalError

from fulfillment.config import get_settings
from fulfillment.database import SessionLocal
from fulfillment.services.inventory_ledger import InventoryLedger
from fulfillment.tasks.celery_app import celery_app
from fulfillment.utils.cache import cache_service

logger = logging.getLogger(__name__)
settings = get_settings()


def run_replenishment(db, threshold: int, amount: int) -> dict:
    """Restock low products through the ledger and drop their cached details."""
    report = InventoryLedger(db).replenish(threshold, amount)
    cache_service.delete_many("product", report.restocked)
    return {
        "status": "success",
        "restocked": report.restocked,
        "skipped": report.skipped,
    }


@celery_app.task(bind=True, name="replenish_low_stock")
def replenish_low_stock(self, threshold: int = None, amount: int = None) -> dict:
    """
    Background scan that tops up products running low on stock.

    Rows currently locked by in-flight orders are skipped instead of waited
    for; the next scheduled run picks them up.

    Args:
        threshold: Restock products at or below this quantity
        amount: Units added to each restocked product

    Returns:
        Dictionary with restocked and skipped product ids
    """
    threshold = settings.REPLENISH_THRESHOLD if threshold is None else threshold
    amount = settings.REPLENISH_AMOUNT if amount is None else amount
    logger.info(f"Starting replenishment scan (threshold={threshold}, amount={amount})")

    db = SessionLocal()
    try:
        result = run_replenishment(db, threshold, amount)
        logger.info(f"Replenishment scan done: {result['restocked']} restocked, {result['skipped']} skipped")
        return result
    except OperationalError as e:
        logger.error(f"Replenishment scan failed: {e}")
        raise self.retry(exc=e, countdown=60, max_retries=3)
    finally:
        db.close()
