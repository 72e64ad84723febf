# app/services/csv_io.py
# Экспорт товаров, заказов и клиентов в CSV, импорт товаров.
# Файлы в UTF-8 с BOM, разделитель ";".

import csv
import io
from typing import Optional

from fastapi import HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.future import select

from app.models.order import Order
from app.models.product import Product
from app.schemas.product import ProductImportRow
from app.services.vip import get_vip_customers
from app.utils.database import utcnow

DELIMITER = ";"
BOM = "\ufeff"

PRODUCT_COLUMNS = [
    "id", "name", "brand", "description", "price", "volume", "category", "subcategory", "stock",
    "notes_top", "notes_heart", "notes_base", "is_featured", "is_new", "is_best_seller", "image", "created_at",
]
ORDER_COLUMNS = [
    "id", "stripe_session_id", "status", "total_amount", "promo_code", "discount_amount",
    "customer_name", "customer_email", "items_count", "items", "tracking_number", "carrier",
    "created_at", "paid_at", "shipped_at", "delivered_at",
]
CUSTOMER_COLUMNS = [
    "id", "name", "email", "total_spent", "order_count", "avg_order", "last_order_date",
    "loyalty_points", "loyalty_tier", "created_at",
]

# заголовки старых выгрузок
HEADER_ALIASES = {
    "notesTop": "notes_top",
    "notesHeart": "notes_heart",
    "notesBase": "notes_base",
    "isFeatured": "is_featured",
    "isNew": "is_new",
    "isBestSeller": "is_best_seller",
}


def oui_non(value: bool) -> str:
    return "Oui" if value else "Non"


def _iso(value) -> str:
    return value.isoformat() if value else ""


def to_csv(columns: list[str], rows: list[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, delimiter=DELIMITER, extrasaction="ignore")
    writer.writeheader()
    writer.writerows(rows)
    return BOM + buffer.getvalue()


def export_filename(kind: str) -> str:
    return f"{kind}_{utcnow().date().isoformat()}.csv"


# ────────────── Экспорт ──────────────
async def export_products_service(request: Request) -> str:
    products = (await request.state.db.execute(
        select(Product).order_by(Product.created_at.desc(), Product.id.desc())
    )).scalars().all()

    rows = [
        {
            "id": p.id,
            "name": p.name,
            "brand": p.brand or "",
            "description": p.description,
            "price": f"{float(p.price):.2f}",
            "volume": p.volume or "",
            "category": p.category,
            "subcategory": p.subcategory or "",
            "stock": p.stock,
            "notes_top": p.notes_top or "",
            "notes_heart": p.notes_heart or "",
            "notes_base": p.notes_base or "",
            "is_featured": oui_non(p.is_featured),
            "is_new": oui_non(p.is_new),
            "is_best_seller": oui_non(p.is_best_seller),
            "image": p.image or "",
            "created_at": _iso(p.created_at),
        }
        for p in products
    ]
    await request.app.state.log.log_info("csv", "Products exported", {"rows": len(rows)})
    return to_csv(PRODUCT_COLUMNS, rows)


async def export_orders_service(request: Request) -> str:
    orders = (await request.state.db.execute(
        select(Order).order_by(Order.created_at.desc(), Order.id.desc())
    )).scalars().all()

    rows = [
        {
            "id": o.id,
            "stripe_session_id": o.stripe_session_id,
            "status": o.status,
            "total_amount": f"{float(o.total_amount):.2f}",
            "promo_code": o.promo_code or "",
            "discount_amount": f"{float(o.discount_amount or 0):.2f}",
            "customer_name": o.customer_name or "",
            "customer_email": o.email or "",
            "items_count": sum(i.quantity for i in o.items),
            "items": " | ".join(f"{i.name} x{i.quantity}" for i in o.items),
            "tracking_number": o.tracking_number or "",
            "carrier": o.carrier or "",
            "created_at": _iso(o.created_at),
            "paid_at": _iso(o.paid_at),
            "shipped_at": _iso(o.shipped_at),
            "delivered_at": _iso(o.delivered_at),
        }
        for o in orders
    ]
    await request.app.state.log.log_info("csv", "Orders exported", {"rows": len(rows)})
    return to_csv(ORDER_COLUMNS, rows)


async def export_customers_service(request: Request) -> str:
    customers = await get_vip_customers(request, sort_by="spent")
    rows = [
        {
            "id": c["id"],
            "name": c["name"] or "",
            "email": c["email"],
            "total_spent": f"{c['total_spent']:.2f}",
            "order_count": c["order_count"],
            "avg_order": f"{c['avg_order_value']:.2f}",
            "last_order_date": (c["last_order_date"] or "")[:10],
            "loyalty_points": c["loyalty_points"],
            "loyalty_tier": c["loyalty_tier"] or "BRONZE",
            "created_at": c["created_at"] or "",
        }
        for c in customers
    ]
    await request.app.state.log.log_info("csv", "Customers exported", {"rows": len(rows)})
    return to_csv(CUSTOMER_COLUMNS, rows)


# ────────────── Импорт ──────────────
def parse_csv(content: bytes) -> list[dict]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="The file must be UTF-8 encoded")

    reader = csv.DictReader(io.StringIO(text), delimiter=DELIMITER)
    if not reader.fieldnames or "name" not in [HEADER_ALIASES.get(h, h) for h in reader.fieldnames]:
        raise HTTPException(status_code=400, detail="CSV header row missing or without a name column")

    rows = []
    for row in reader:
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        rows.append({HEADER_ALIASES.get(k, k): (v.strip() if isinstance(v, str) else v)
                     for k, v in row.items() if k is not None})
    return rows


def _format_errors(error: ValidationError) -> list[str]:
    return [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in error.errors()]


async def _find_existing(row: dict, data: ProductImportRow, db) -> Optional[Product]:
    product = None
    raw_id = row.get("id")
    if raw_id and str(raw_id).isdigit():
        product = (await db.execute(select(Product).where(Product.id == int(raw_id)))).scalar_one_or_none()
    if product is None and data.brand:
        product = (await db.execute(
            select(Product).where(Product.name == data.name, Product.brand == data.brand)
        )).scalars().first()
    return product


async def import_products_service(content: bytes, request: Request) -> dict:
    """
    Создаёт или обновляет товар на каждую строку. Товар ищется по id,
    затем по name + brand. Ошибочные строки возвращаются с номером строки
    в файле (заголовок это строка 1) и не прерывают импорт.
    """
    db = request.state.db
    log = request.app.state.log

    rows = parse_csv(content)
    created = updated = 0
    errors = []

    for index, row in enumerate(rows):
        line = index + 2
        try:
            data = ProductImportRow.model_validate(row)
        except ValidationError as e:
            errors.append({"line": line, "errors": _format_errors(e)})
            continue

        values = data.model_dump(mode="json")
        product = await _find_existing(row, data, db)
        if product is not None:
            for key, value in values.items():
                setattr(product, key, value)
            updated += 1
        else:
            db.add(Product(**values))
            created += 1

    await db.commit()
    await request.app.state.cache.invalidate_all_products()
    await request.app.state.cache.invalidate_categories()

    imported = created + updated
    await log.log_info("csv", "Products imported", {"created": created, "updated": updated, "errors": len(errors)})
    return {
        "success": True,
        "imported": imported,
        "created": created,
        "updated": updated,
        "errors": errors,
        "message": f"{imported} products imported ({created} created, {updated} updated), {len(errors)} errors",
    }
