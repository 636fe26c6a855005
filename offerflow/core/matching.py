"""
Invoice reconciliation using APScheduler.

Every tick loads the invoices that are still pending (is_checked IS NULL),
pairs each with its offer and hands the pair to the CompareService. The
tick never waits for a comparison: a completion callback stores the result.
A negative result leaves the invoice pending, so it is compared again on
the next tick.
"""
import logging
import threading
from concurrent.futures import Future
from datetime import date
from typing import List, Optional, Tuple

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .compare import CompareService, InvoiceFacts, OfferFacts
from .config import get_settings
from .db import Invoice, Offer, get_db, get_offer, list_unchecked_invoices, mark_invoice_result

logger = logging.getLogger(__name__)

MATCHING_JOB_ID = "invoice_matching"

# Global scheduler instance
scheduler: Optional[BackgroundScheduler] = None
compare_service: Optional[CompareService] = None

# Invoices whose comparison has been dispatched but not yet stored
_in_flight: set[int] = set()
_in_flight_lock = threading.Lock()


def get_compare_service() -> CompareService:
    global compare_service
    if compare_service is None:
        compare_service = CompareService(workers=get_settings().compare_workers)
    return compare_service


def snapshot(offer: Offer, invoice: Invoice) -> Tuple[OfferFacts, InvoiceFacts]:
    return (
        OfferFacts(
            offer_number=offer.offer_number,
            offer_date=offer.offer_date,
            offer_value=offer.offer_value,
            customer_id=offer.customer_id,
        ),
        InvoiceFacts(
            invoice_id=invoice.invoice_id,
            invoice_number=invoice.invoice_number,
            invoice_date=invoice.invoice_date,
            invoice_total_sum=invoice.invoice_total_sum,
            offer_number=invoice.offer_number,
            customer_id=invoice.customer_id,
        ),
    )


def apply_comparison_result(invoice_id: int, matched: bool) -> bool:
    """Store a comparison result. Returns False if the invoice was no longer pending."""
    with get_db() as session:
        updated = mark_invoice_result(session, invoice_id, matched, date.today())
    if updated:
        logger.info(f"Invoice {invoice_id} checked: {'valid' if matched else 'no match, stays pending'}")
    else:
        logger.info(f"Invoice {invoice_id} is no longer pending, result discarded")
    return updated


def _find_pending_pairs() -> List[Tuple[OfferFacts, InvoiceFacts]]:
    pairs = []
    with get_db() as session:
        for invoice in list_unchecked_invoices(session):
            if invoice.offer_number is None:
                continue
            offer = get_offer(session, invoice.offer_number)
            if offer is None:
                logger.warning(f"No Offer found for invoice {invoice.invoice_id} (offer {invoice.offer_number})")
                continue
            pairs.append(snapshot(offer, invoice))
    return pairs


def _on_compared(invoice_id: int, done: "Future[bool]", future: "Future[bool]"):
    if future.cancelled():
        with _in_flight_lock:
            _in_flight.discard(invoice_id)
        done.cancel()
        return

    try:
        matched = future.result()
    except Exception as e:
        logger.error(f"Comparison of invoice {invoice_id} failed: {e}")
        matched = False

    error = None
    try:
        apply_comparison_result(invoice_id, matched)
    except Exception as e:
        logger.error(f"Failed to store comparison result for invoice {invoice_id}: {e}")
        error = e
    finally:
        with _in_flight_lock:
            _in_flight.discard(invoice_id)

    if error is not None:
        done.set_exception(error)
    else:
        done.set_result(matched)


def matching_job(compare_service: Optional[CompareService] = None) -> List["Future[bool]"]:
    """
    Run one reconciliation tick.

    Returns one future per dispatched comparison; each resolves to the
    comparison result once it has been stored on the invoice.
    """
    service = compare_service or get_compare_service()

    try:
        pairs = _find_pending_pairs()
    except Exception as e:
        logger.error(f"Failed to load pending invoices: {e}")
        return []

    dispatched = []
    for offer_facts, invoice_facts in pairs:
        invoice_id = invoice_facts.invoice_id
        with _in_flight_lock:
            if invoice_id in _in_flight:
                continue
            _in_flight.add(invoice_id)

        try:
            future = service.compare(offer_facts, invoice_facts)
        except Exception as e:
            logger.error(f"Could not start comparison for invoice {invoice_id}: {e}")
            with _in_flight_lock:
                _in_flight.discard(invoice_id)
            continue

        done: "Future[bool]" = Future()
        future.add_done_callback(lambda f, i=invoice_id, d=done: _on_compared(i, d, f))
        dispatched.append(done)

    if dispatched:
        logger.info(f"Dispatched {len(dispatched)} invoice comparisons")
    return dispatched


def start_scheduler(interval: Optional[int] = None, service: Optional[CompareService] = None):
    """Start the background reconciliation scheduler."""
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return

    seconds = interval or get_settings().matching_interval
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        matching_job,
        IntervalTrigger(seconds=seconds),
        kwargs={"compare_service": service},
        id=MATCHING_JOB_ID,
        name="Reconcile pending invoices with offers",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(f"Background scheduler started (matching every {seconds}s)")


def stop_scheduler():
    """Stop the background scheduler and cancel queued comparisons."""
    global scheduler, compare_service

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Background scheduler stopped")
    if compare_service is not None:
        compare_service.shutdown(wait=False)
        compare_service = None


def get_scheduler_status() -> dict:
    """Get scheduler status."""
    if scheduler is None:
        return {"running": False, "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None
        })

    return {"running": scheduler.running, "jobs": jobs}
