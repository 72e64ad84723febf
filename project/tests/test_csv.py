"""
Экспорт CSV и импорт товаров.
"""
from sqlalchemy.future import select

from app.models.product import Product
from app.services.csv_io import BOM, parse_csv
from conftest import fetch_all

HEADER = "name;brand;description;price;volume;category;stock;notesTop;isNew;image"


def _upload(client, headers, text: str, encoding: str = "utf-8"):
    return client.post(
        "/admin/import/products",
        headers=headers,
        files={"file": ("produits.csv", text.encode(encoding), "text/csv")},
    )


def test_export_products(client, admin_headers, products):
    response = client.get("/admin/export/products", headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="products_') and disposition.endswith('.csv"')

    text = response.content.decode("utf-8")
    assert text.startswith(BOM)
    lines = text[1:].splitlines()
    assert lines[0].split(";")[:5] == ["id", "name", "brand", "description", "price"]
    assert len(lines) == 3
    assert any("Oud Royal;Maison Lumière" in line and ";100.00;" in line for line in lines)
    assert all(line.count(";Non;Non;Non;") == 1 for line in lines[1:])


def test_export_orders_and_customers(client, admin_headers, customer):
    orders = client.get("/admin/export/orders", headers=admin_headers)
    customers = client.get("/admin/export/customers", headers=admin_headers)

    assert orders.status_code == 200
    assert orders.content.decode("utf-8")[1:].splitlines()[0].startswith("id;stripe_session_id;status")
    rows = customers.content.decode("utf-8")[1:].splitlines()
    assert rows[0].startswith("id;name;email;total_spent")
    assert any(customer.email in row for row in rows[1:])


def test_export_requires_admin(client, auth_headers):
    assert client.get("/admin/export/products", headers=auth_headers).status_code == 403


def test_parse_csv_skips_empty_rows_and_maps_aliases():
    content = (BOM + HEADER + "\n" + "Ambre;;Chaud;45,50;;Homme;3;Bergamote;Oui;https://cdn.test/a.jpg\n;;;;;;;;;\n").encode()

    rows = parse_csv(content)

    assert len(rows) == 1
    assert rows[0]["notes_top"] == "Bergamote"
    assert rows[0]["is_new"] == "Oui"


def test_import_creates_updates_and_reports(client, admin_headers, products):
    text = "\n".join([
        HEADER,
        "Ambre Nuit;Maison Lumière;Ambre et vanille;89,90;75ml;Homme;12;Bergamote;Oui;https://cdn.test/ambre.jpg",
        "Sans Prix;Maison Lumière;Pas de prix;-5;50ml;Femme;1;;Non;https://cdn.test/x.jpg",
        "Oud Royal;Maison Lumière;Nouvelle description;120;100ml;Niche;4;;Non;https://cdn.test/oud.jpg",
        "Mauvaise Catégorie;Maison Lumière;Catégorie inconnue;30;50ml;Enfant;1;;Non;https://cdn.test/y.jpg",
    ])

    response = _upload(client, admin_headers, text)

    assert response.status_code == 200
    body = response.json()
    assert (body["created"], body["updated"], body["imported"]) == (1, 1, 2)
    assert [e["line"] for e in body["errors"]] == [3, 5]
    assert any("price" in message for message in body["errors"][0]["errors"])

    by_name = {p.name: p for p in fetch_all(select(Product))}
    assert "Sans Prix" not in by_name
    ambre = by_name["Ambre Nuit"]
    assert ambre.price == 89.9
    assert ambre.is_new is True
    assert ambre.notes_top == "Bergamote"
    oud = by_name["Oud Royal"]
    assert oud.id == products.oud.id
    assert oud.price == 120.0
    assert oud.stock == 4


def test_import_matches_by_id(client, admin_headers, products):
    text = "\n".join([
        "id;" + HEADER,
        f"{products.rose.id};Rose Poudrée;Atelier Flore;Rose et iris;55;50ml;Femme;6;;Non;https://cdn.test/rose.jpg",
    ])

    body = _upload(client, admin_headers, text).json()

    assert body["updated"] == 1
    names = sorted(p.name for p in fetch_all(select(Product)))
    assert names == ["Oud Royal", "Rose Poudrée"]


def test_import_without_name_column_is_400(client, admin_headers):
    response = _upload(client, admin_headers, "title;price\nAmbre;10\n")

    assert response.status_code == 400


def test_import_rejects_non_utf8(client, admin_headers):
    response = _upload(client, admin_headers, HEADER + "\nCrème;X;Y;10;;Femme;1;;Non;https://cdn.test/c.jpg",
                       encoding="utf-16")

    assert response.status_code == 400
