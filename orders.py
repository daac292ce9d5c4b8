"""
Order lifecycle.

Three orthogonal state fields live on an order:

    status           pending -> confirmed|cancelled -> processing -> shipped -> delivered
    payment.status   pending -> verified|rejected
    shipping.status  pending -> processing -> shipped -> delivered

Totals are always derived from the line items and the shipping block, so
every write path calls `calculate_totals` before persisting.
"""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from pymongo import ReturnDocument

from database import as_utc

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"processing", "shipped", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}
SHIPPING_STATUSES = ("pending", "processing", "shipped", "delivered")
DELETABLE_STATUSES = ("pending", "cancelled")


def _money(value: float) -> float:
    return round(float(value), 2)


def generate_order_number(db, now: Optional[float] = None) -> str:
    seq = db["ordersequence"].find_one_and_update(
        {"_id": "seq"},
        {"$inc": {"last_number": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    num = seq.get("last_number", 1)
    stamp = str(int((now if now is not None else time.time()) * 1000))[-6:]
    return f"TLS-{stamp}-{num:04d}"


def compute_tax(subtotal: float, tax_rate: float) -> float:
    return _money(subtotal * tax_rate / 100.0)


def calculate_totals(order: Dict[str, Any]) -> Dict[str, Any]:
    """Recompute line subtotals and the totals block of `order` in place."""
    for line in order.get("books", []):
        line["subtotal"] = _money(line["price"] * line["quantity"])
    shipping = order.get("shipping") or {}
    totals = order.setdefault("totals", {})
    totals["subtotal"] = _money(sum(line["subtotal"] for line in order.get("books", [])))
    totals["shipping_cost"] = _money(shipping.get("cost") or 0) if shipping.get("enabled") else 0.0
    totals["tax"] = _money(totals.get("tax") or 0)
    totals["total"] = _money(totals["subtotal"] + totals["shipping_cost"] + totals["tax"])
    return totals


def new_order(
    order_number: str,
    user: Dict[str, Any],
    lines: List[Dict[str, Any]],
    payment_method: Dict[str, Any],
    transaction_proof: str,
    shipping_enabled: bool,
    shipping_address: Optional[str],
    general_settings: Dict[str, Any],
    order_type: str = "individual",
    notes: str = "",
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    order = {
        "order_number": order_number,
        "user": user,
        "books": lines,
        "payment": {
            "method": payment_method["type"],
            "instructions": payment_method.get("instructions") or "",
            "file": transaction_proof,
            "amount": 0.0,
            "status": "pending",
            "verified_at": None,
            "verified_by": None,
            "notes": "",
        },
        "shipping": {
            "enabled": shipping_enabled,
            "address": shipping_address if shipping_enabled else None,
            "cost": _money(general_settings.get("shipping_cost") or 0) if shipping_enabled else 0.0,
            "status": "pending",
            "tracking_number": None,
            "shipped_at": None,
            "delivered_at": None,
        },
        "totals": {"tax": 0.0},
        "status": "pending",
        "order_type": order_type,
        "notes": notes or "",
        "admin_notes": "",
        "verification_deadline": now + timedelta(hours=int(general_settings.get("verification_timeout") or 24)),
        "timeline": [{"status": "pending", "note": "Order placed", "at": now, "by": user.get("user_id")}],
    }
    calculate_totals(order)
    order["totals"]["tax"] = compute_tax(order["totals"]["subtotal"], general_settings.get("tax_rate") or 0)
    totals = calculate_totals(order)
    order["payment"]["amount"] = totals["total"]
    return order


def verify_payment(db, order_oid, approved: bool, notes: Optional[str], verifier_id: Optional[str]) -> Dict[str, Any]:
    """Approve or reject a pending payment.

    Only a pending order with a pending payment is touched. The check and the
    write are one conditional update, so a payment is processed at most once
    even under concurrent calls, and a cancelled order stays cancelled.
    """
    now = datetime.now(timezone.utc)
    new_status = "confirmed" if approved else "cancelled"
    note = "Payment verified and approved" if approved else f"Payment rejected: {notes or ''}".strip()
    updated = db["order"].find_one_and_update(
        {"_id": order_oid, "status": "pending", "payment.status": "pending"},
        {
            "$set": {
                "payment.status": "verified" if approved else "rejected",
                "payment.verified_at": now,
                "payment.verified_by": verifier_id,
                "payment.notes": notes or "",
                "status": new_status,
                "updated_at": now,
            },
            "$push": {"timeline": {"status": new_status, "note": note, "at": now, "by": verifier_id}},
        },
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        order = db["order"].find_one({"_id": order_oid})
        if order is None:
            raise HTTPException(status_code=404, detail="Order not found")
        if (order.get("payment") or {}).get("status") != "pending":
            raise HTTPException(status_code=400, detail="Order payment has already been processed")
        raise HTTPException(status_code=400, detail=f"Cannot verify payment for a {order.get('status')} order")
    logger.info("Payment for order %s %s by %s", updated.get("order_number"), "verified" if approved else "rejected", verifier_id)
    return updated


def _mark_shipping(shipping: Dict[str, Any], status: str, now: datetime) -> None:
    shipping["status"] = status
    if status == "shipped" and not shipping.get("shipped_at"):
        shipping["shipped_at"] = now
    if status == "delivered":
        if not shipping.get("shipped_at"):
            shipping["shipped_at"] = now
        if not shipping.get("delivered_at"):
            shipping["delivered_at"] = now


def change_status(order: Dict[str, Any], new_status: str, note: Optional[str], by: Optional[str], now: datetime) -> None:
    current = order.get("status", "pending")
    if new_status == current:
        return
    if new_status not in ORDER_TRANSITIONS.get(current, set()):
        raise HTTPException(status_code=400, detail=f"Cannot change order status from {current} to {new_status}")
    if new_status in ("processing", "shipped", "delivered") and order["payment"].get("status") != "verified":
        raise HTTPException(status_code=400, detail="Payment must be verified before fulfilment")
    order["status"] = new_status
    shipping = order.get("shipping") or {}
    if new_status in ("shipped", "delivered") and shipping.get("enabled"):
        _mark_shipping(shipping, new_status, now)
    order.setdefault("timeline", []).append(
        {"status": new_status, "note": note or f"Status changed to {new_status}", "at": now, "by": by}
    )


def update_shipping(
    order: Dict[str, Any],
    now: datetime,
    status: Optional[str] = None,
    tracking_number: Optional[str] = None,
    cost: Optional[float] = None,
) -> None:
    if status is None and tracking_number is None and cost is None:
        return
    shipping = order.get("shipping") or {}
    if not shipping.get("enabled"):
        raise HTTPException(status_code=400, detail="Shipping is not enabled for this order")
    if order["payment"].get("status") != "verified":
        raise HTTPException(status_code=400, detail="Shipping can only be updated after payment is verified")
    if status is not None:
        if status not in SHIPPING_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid shipping status: {status}")
        _mark_shipping(shipping, status, now)
    if tracking_number is not None:
        shipping["tracking_number"] = tracking_number.strip()
    if cost is not None:
        shipping["cost"] = _money(cost)
    order["shipping"] = shipping


def ensure_deletable(order: Dict[str, Any]) -> None:
    if order.get("status") not in DELETABLE_STATUSES:
        raise HTTPException(status_code=400, detail="Cannot delete orders that are not pending or cancelled")


def with_extras(order: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    deadline = as_utc(order.get("verification_deadline"))
    order["total_items"] = sum(line.get("quantity", 0) for line in order.get("books", []))
    order["is_verification_expired"] = bool(
        deadline and order.get("payment", {}).get("status") == "pending" and now > deadline
    )
    return order


def order_stats(collection) -> Dict[str, Any]:
    stats = {"total_orders": collection.count_documents({})}
    for status in ORDER_TRANSITIONS:
        stats[f"{status}_orders"] = collection.count_documents({"status": status})
    stats["pending_verification"] = collection.count_documents({"payment.status": "pending"})
    revenue = 0.0
    for order in collection.find({"payment.status": "verified"}, {"totals.total": 1}):
        revenue += (order.get("totals") or {}).get("total") or 0
    stats["total_revenue"] = _money(revenue)
    return stats
