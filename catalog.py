"""
Catalog helpers: turning multipart product forms into product documents,
product search filters and the admin CSV/JSON export.
"""

import csv
import io
import json
import math
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException
from pydantic import ValidationError

from database import to_serializable
from schemas import Product

REQUIRED_FIELDS = ("name", "category", "size_volume", "price", "stock_quantity")
TEXT_FIELDS = ("name", "description", "category", "size_volume", "unit_type", "water_source", "treatment_process", "product_code")
FLOAT_FIELDS = ("price", "cost_price")
INT_FIELDS = ("stock_quantity", "reorder_level")
# fields an update may clear by sending the literal "null"
NULLABLE_FIELDS = {"description", "unit_type", "cost_price", "water_source", "treatment_process", "product_code"}
NULL = "null"
DEFAULT_REORDER_LEVEL = 50

EXPORT_HEADERS = {
    "name": "Product Name",
    "category": "Category",
    "size_volume": "Size/Volume",
    "unit_type": "Unit Type",
    "price": "Price (₦)",
    "cost_price": "Cost Price (₦)",
    "stock_quantity": "Stock Quantity",
    "reorder_level": "Reorder Level",
    "water_source": "Water Source",
    "treatment_process": "Treatment Process",
    "product_code": "Product Code",
    "description": "Description",
    "image_url": "Image URL",
    "created_at": "Created Date",
}
DEFAULT_EXPORT_FIELDS = ["name", "category", "size_volume", "price", "stock_quantity", "product_code", "created_at"]


def _to_float(field: str, value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be a number")
    # "inf", "nan" and overflowing literals like 1e400 cannot be stored as JSON
    if not math.isfinite(number):
        raise HTTPException(status_code=400, detail=f"{field} must be a finite number")
    return number


def _to_int(field: str, value: str) -> int:
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail=f"{field} must be a whole number")


def _coerce(field: str, value: str) -> Any:
    if field in FLOAT_FIELDS:
        return _to_float(field, value)
    if field in INT_FIELDS:
        return _to_int(field, value)
    return value


def _validated(doc: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return Product(**doc).model_dump()
    except ValidationError as e:
        errors = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise HTTPException(status_code=400, detail=f"Invalid product: {errors}")


def _text_values(form: Any) -> Dict[str, str]:
    # file parts are handled by the caller
    return {k: v for k, v in form.items() if isinstance(v, str)}


def product_from_form(form: Any) -> Dict[str, Any]:
    """Build a new product document from create-form fields."""
    values = _text_values(form)
    missing = [f for f in REQUIRED_FIELDS if not values.get(f, "").strip()]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")

    doc: Dict[str, Any] = {}
    for field in TEXT_FIELDS + FLOAT_FIELDS + INT_FIELDS:
        raw = values.get(field)
        if raw is None or raw == NULL or (field not in TEXT_FIELDS and not raw.strip()):
            continue
        doc[field] = _coerce(field, raw)
    doc.setdefault("reorder_level", DEFAULT_REORDER_LEVEL)
    return _validated(doc)


def merge_product_form(existing: Dict[str, Any], form: Any) -> Dict[str, Any]:
    """
    Apply an update form on top of a stored product.

    Absent fields keep their stored value, as do blank required or numeric
    fields. The literal "null" clears an optional field.
    """
    values = _text_values(form)
    merged = {k: existing.get(k) for k in Product.model_fields}
    for field in TEXT_FIELDS + FLOAT_FIELDS + INT_FIELDS:
        if field not in values:
            continue
        raw = values[field]
        if raw == NULL:
            if field not in NULLABLE_FIELDS:
                raise HTTPException(status_code=400, detail=f"{field} cannot be cleared")
            merged[field] = None
            continue
        if not raw.strip() and (field in REQUIRED_FIELDS or field not in TEXT_FIELDS):
            continue
        merged[field] = _coerce(field, raw)
    if merged.get("reorder_level") is None:
        merged["reorder_level"] = DEFAULT_REORDER_LEVEL
    return _validated(merged)


def product_filter(category: Optional[str] = None, q: Optional[str] = None) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    if category:
        filt["category"] = category
    if q:
        pattern = re.escape(q.strip())
        filt["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"product_code": {"$regex": pattern, "$options": "i"}},
        ]
    return filt


def export_filter(categories: Optional[List[str]] = None, start: Optional[date] = None, end: Optional[date] = None) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    if categories:
        filt["category"] = {"$in": categories}
    created: Dict[str, Any] = {}
    if start:
        created["$gte"] = datetime.combine(start, datetime.min.time())
    if end:
        created["$lte"] = datetime.combine(end, datetime.max.time())
    if created:
        filt["created_at"] = created
    return filt


def parse_export_fields(fields: Optional[str]) -> List[str]:
    if not fields:
        return list(DEFAULT_EXPORT_FIELDS)
    selected = [f.strip() for f in fields.split(",") if f.strip()]
    unknown = [f for f in selected if f not in EXPORT_HEADERS]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown export fields: {', '.join(unknown)}")
    return selected


def _csv_value(field: str, value: Any) -> Any:
    if value is None:
        return ""
    if field == "created_at" and isinstance(value, datetime):
        return value.date().isoformat()
    if field in FLOAT_FIELDS:
        return f"{float(value):.2f}"
    return value


def export_products(products: Iterable[Dict[str, Any]], fmt: str, fields: List[str]) -> Tuple[str, str]:
    """Render products as (content, media type)."""
    if fmt == "json":
        rows = [{f: to_serializable(p.get(f)) for f in fields} for p in products]
        return json.dumps(rows, indent=2, ensure_ascii=False), "application/json; charset=utf-8"
    if fmt != "csv":
        raise HTTPException(status_code=400, detail="format must be csv or json")
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow([EXPORT_HEADERS[f] for f in fields])
    for p in products:
        writer.writerow([_csv_value(f, p.get(f)) for f in fields])
    return buf.getvalue(), "text/csv; charset=utf-8"
