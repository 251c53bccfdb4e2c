"""
Maintenance scheduled jobs.

Jobs that keep time-driven state current: invoices past their due date
become overdue and deletion OTPs past their expiry are discarded.
"""

from datetime import datetime

from annotation_hub.log.logging import logger
from annotation_hub.services.invoice_service import invoice_service
from annotation_hub.services.project_service import project_service


async def mark_overdue_invoices() -> dict:
    """Flip unpaid invoices whose due date has passed to overdue."""
    start_time = datetime.utcnow()
    try:
        updated = await invoice_service.mark_overdue_invoices()
    except Exception as e:
        logger.error(
            f"Overdue invoice sweep failed: {e}",
            event_type="overdue_sweep_failed",
            error=str(e),
        )
        raise

    result = {
        "updated": updated,
        "duration_ms": int((datetime.utcnow() - start_time).total_seconds() * 1000),
    }
    logger.info(f"Overdue sweep marked {updated} invoices", event_type="overdue_sweep", **result)
    return result


async def purge_expired_deletion_otps() -> dict:
    """Clear deletion OTPs that expired without being used."""
    start_time = datetime.utcnow()
    try:
        purged = await project_service.purge_expired_otps()
    except Exception as e:
        logger.error(
            f"Deletion OTP purge failed: {e}",
            event_type="otp_purge_failed",
            error=str(e),
        )
        raise

    result = {
        "purged": purged,
        "duration_ms": int((datetime.utcnow() - start_time).total_seconds() * 1000),
    }
    logger.info(f"Purged {purged} expired deletion OTPs", event_type="otp_purge", **result)
    return result
