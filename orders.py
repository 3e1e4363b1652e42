"""
Orders

An order only comes into existence once Paystack confirms a charge: the
order draft the storefront attached as transaction metadata is turned into
an order record and stored. One order per payment reference, enforced by a
unique index on payment.reference.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import structlog
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, utcnow
from errors import InvalidTransition, OrderConflict
from paystack import from_minor_units
from schemas import Order

logger = structlog.get_logger(__name__)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def transition(current: str, target: str) -> OrderStatus:
    """Validate a status change and return the new status."""
    try:
        current_status = OrderStatus(current)
        target_status = OrderStatus(target)
    except ValueError:
        raise InvalidTransition(current, target)
    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransition(current, target)
    return target_status


def _number(value: Any, default: float = 0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _items(raw_items: Any) -> list:
    items = []
    for raw in raw_items if isinstance(raw_items, list) else []:
        if not isinstance(raw, dict):
            continue
        quantity = max(0, int(_number(raw.get("quantity"))))
        price = max(0.0, _number(raw.get("price", raw.get("unit_price"))))
        items.append({
            "product_id": raw.get("productId") or raw.get("product_id") or raw.get("id"),
            "name": _text(raw.get("name")),
            "size_volume": _text(raw.get("size_volume")),
            "quantity": quantity,
            "price": price,
            "total": max(0.0, _number(raw.get("total"), quantity * price)),
        })
    return items


def _customer(raw: Dict[str, Any]) -> Dict[str, str]:
    first = _text(raw.get("firstName") or raw.get("first_name"))
    last = _text(raw.get("lastName") or raw.get("last_name"))
    return {
        "name": _text(raw.get("name")) or f"{first} {last}".strip(),
        "first_name": first,
        "last_name": last,
        "email": _text(raw.get("email")),
        "phone": _text(raw.get("phone")),
        "address": _text(raw.get("address")),
        "city": _text(raw.get("city")),
        "state": _text(raw.get("state")),
        "zip_code": _text(raw.get("zipCode") or raw.get("zip_code")),
    }


def _totals(raw: Dict[str, Any], reference: str) -> Dict[str, float]:
    subtotal = _number(raw.get("subtotal"))
    delivery_fee = _number(raw.get("deliveryFee", raw.get("delivery_fee")))
    total = subtotal + delivery_fee
    if "total" in raw and _number(raw.get("total"), None) != total:
        logger.warning("order_total_mismatch", reference=reference, draft_total=raw.get("total"), computed_total=total)
    return {"subtotal": subtotal, "deliveryFee": delivery_fee, "total": total}


def build_order_record(payment: Dict[str, Any], reference: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Turn a verified Paystack transaction into an order document."""
    now = now or utcnow()
    metadata = payment.get("metadata")
    draft = metadata.get("order") if isinstance(metadata, dict) else None
    draft = _mapping(draft)
    raw_customer = _mapping(draft.get("customer"))
    raw_payment = _mapping(draft.get("payment"))
    customer = _customer(raw_customer)

    record = {
        "items": _items(draft.get("items")),
        "customer": customer,
        "payment": {
            "provider": "paystack",
            "reference": reference,
            "amount": from_minor_units(payment.get("amount")),
            "channel": payment.get("channel"),
            "paid_at": payment.get("paid_at") or now.isoformat(),
        },
        "totals": _totals(_mapping(draft.get("totals")), reference),
        "order_date": now,
        "status": OrderStatus.PAID.value,
        "delivery_method": _text(raw_customer.get("deliveryMethod") or raw_payment.get("deliveryMethod")) or "home",
        "delivery_address": customer["address"],
        "delivery_city": customer["city"],
        "delivery_state": customer["state"],
        "delivery_zip_code": customer["zip_code"],
        "special_instructions": _text(raw_payment.get("specialInstructions")),
    }
    return Order.model_validate(record).model_dump()


def find_by_reference(db: Database, reference: str) -> Optional[dict]:
    return db["order"].find_one({"payment.reference": reference})


def materialize_order(db: Database, payment: Dict[str, Any], reference: str) -> Tuple[dict, bool]:
    """Persist the order for a verified payment; replays return the stored order."""
    existing = find_by_reference(db, reference)
    if existing:
        logger.info("order_already_processed", reference=reference, order_id=str(existing["_id"]))
        return existing, False

    record = build_order_record(payment, reference)
    try:
        create_document(db, "order", record)
    except DuplicateKeyError:
        existing = find_by_reference(db, reference)
        logger.info("order_already_processed", reference=reference, order_id=str(existing["_id"]))
        return existing, False
    except Exception:
        # payment is captured at this point, the order has to be reconciled by hand
        logger.error("order_insert_failed", reference=reference, amount=record["payment"]["amount"])
        raise

    order = find_by_reference(db, reference)
    logger.info("order_created", reference=reference, order_id=str(order["_id"]), total=record["totals"]["total"])
    return order, True


def set_status(db: Database, order: dict, target: str) -> dict:
    current = order.get("status", OrderStatus.PENDING.value)
    new_status = transition(current, target)
    # write only if nobody moved the order since it was read
    result = db["order"].update_one(
        {"_id": order["_id"], "status": order.get("status")},
        {"$set": {"status": new_status.value, "updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        stored = db["order"].find_one({"_id": order["_id"]}, {"status": 1}) or {}
        logger.warning("order_status_conflict", order_id=str(order["_id"]), expected=current, stored=stored.get("status"))
        transition(stored.get("status", OrderStatus.PENDING.value), target)
        raise OrderConflict()
    logger.info("order_status_changed", order_id=str(order["_id"]), old=current, new=new_status.value)
    return db["order"].find_one({"_id": order["_id"]})
