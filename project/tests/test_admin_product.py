"""
Управление товарами в back-office: создание, правка, удаление и массовые действия.
"""
from sqlalchemy.future import select

from app.models.order import Order, OrderItem
from app.models.product import Product
from app.models.stock import StockMovement
from conftest import add, fetch_all, get

NEW_PRODUCT = {
    "name": "Vétiver Boisé",
    "brand": "Maison Lumière",
    "description": "Vétiver fumé, cèdre et poivre noir.",
    "price": 78.5,
    "volume": "100ml",
    "image": "https://cdn.test/vetiver.jpg",
    "category": "Homme",
    "stock": 6,
}


def test_create_product(client, admin_headers, products):
    response = client.post("/admin/products", json=NEW_PRODUCT, headers=admin_headers)

    assert response.status_code == 201
    assert response.json()["price"] == 78.5
    assert response.json()["image"] == "https://cdn.test/vetiver.jpg"
    names = {p["name"] for p in client.get("/products").json()}
    assert "Vétiver Boisé" in names


def test_create_product_validation(client, admin_headers, auth_headers):
    wrong_category = client.post("/admin/products", json={**NEW_PRODUCT, "category": "Enfant"}, headers=admin_headers)
    free = client.post("/admin/products", json={**NEW_PRODUCT, "price": 0}, headers=admin_headers)

    assert wrong_category.status_code == 400
    assert free.status_code == 400
    assert client.post("/admin/products", json=NEW_PRODUCT, headers=auth_headers).status_code == 403


def test_update_product_records_stock_change(client, admin_headers, admin, products):
    response = client.patch(f"/admin/products/{products.oud.id}", headers=admin_headers,
                            json={"price": 110, "stock": 15})

    assert response.status_code == 200
    assert response.json()["price"] == 110.0
    assert response.json()["stock"] == 15
    assert response.json()["name"] == "Oud Royal"

    [movement] = fetch_all(select(StockMovement).where(StockMovement.product_id == products.oud.id))
    assert (movement.type, movement.quantity, movement.stock_after) == ("ADJUSTMENT", 5, 15)
    assert movement.user_id == admin.id


def test_update_unknown_product_is_404(client, admin_headers):
    assert client.patch("/admin/products/9999", json={"price": 10}, headers=admin_headers).status_code == 404


def test_ordered_product_cannot_be_deleted(client, admin_headers, customer, products):
    add(Order(
        stripe_session_id="cs_test_kept", user_id=customer.id, status="PAID", total_amount=100.0,
        items=[OrderItem(product_id=products.oud.id, name="Oud Royal", price=100.0, quantity=1)],
    ))

    assert client.delete(f"/admin/products/{products.oud.id}", headers=admin_headers).status_code == 400
    assert client.delete(f"/admin/products/{products.rose.id}", headers=admin_headers).json() == {"success": True}
    assert get(Product, products.rose.id) is None
    assert client.get(f"/admin/products/{products.rose.id}", headers=admin_headers).status_code == 404


def test_bulk_flags_and_price(client, admin_headers, products):
    ids = [products.oud.id, products.rose.id]

    featured = client.post("/admin/products/bulk", headers=admin_headers,
                           json={"action": "set_featured", "product_ids": ids})
    raised = client.post("/admin/products/bulk", headers=admin_headers,
                         json={"action": "adjust_price", "product_ids": [products.oud.id],
                               "data": {"type": "percent", "value": 10}})

    assert featured.json()["affected"] == 2
    assert all(get(Product, i).is_featured for i in ids)
    assert raised.json()["affected"] == 1
    assert get(Product, products.oud.id).price == 110.0


def test_bulk_delete_skips_ordered_products(client, admin_headers, customer, products):
    add(Order(
        stripe_session_id="cs_test_bulk", user_id=customer.id, status="DELIVERED", total_amount=50.0,
        items=[OrderItem(product_id=products.rose.id, name="Rose Blanche", price=50.0, quantity=1)],
    ))

    body = client.post("/admin/products/bulk", headers=admin_headers,
                       json={"action": "delete", "product_ids": [products.oud.id, products.rose.id]}).json()

    assert body["affected"] == 1
    assert body["skipped"] == [products.rose.id]
    assert get(Product, products.oud.id) is None


def test_bulk_invalid_data_is_400(client, admin_headers, products):
    response = client.post("/admin/products/bulk", headers=admin_headers,
                           json={"action": "set_category", "product_ids": [products.oud.id],
                                 "data": {"category": "Enfant"}})

    assert response.status_code == 400
    assert client.post("/admin/products/bulk", headers=admin_headers,
                       json={"action": "set_new", "product_ids": [9999]}).status_code == 404
