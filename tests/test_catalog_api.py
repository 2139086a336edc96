from conftest import auth_header, register


# --- Categories ---
def test_categories_are_owner_managed_and_unique(client, owner, buyer):
    assert client.post("/api/categories", headers=buyer.headers, json={"name": "Dairy"}).status_code == 403

    created = client.post("/api/categories", headers=owner.headers, json={"name": "Dairy"})
    assert created.status_code == 201
    duplicate = client.post("/api/categories", headers=owner.headers, json={"name": "Dairy"})
    assert duplicate.status_code == 409

    client.post("/api/categories", headers=owner.headers, json={"name": "Bakery"})
    names = [c["name"] for c in client.get("/api/categories").json()["data"]]
    assert names == ["Bakery", "Dairy"]


def test_category_with_products_cannot_be_deleted(client, owner, catalog):
    response = client.delete(f"/api/categories/{catalog.category['id']}", headers=owner.headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot delete category that contains 2 products"


def test_category_page_lists_in_stock_products(client, owner, catalog):
    client.put(f"/api/products/{catalog.carrots['id']}", headers=owner.headers, json={"in_stock": False})

    data = client.get(f"/api/categories/{catalog.category['id']}").json()["data"]
    assert data["category"]["name"] == "Produce"
    assert [p["name"] for p in data["products"]] == ["Organic Apples"]
    assert data["total_products"] == 1


def test_rename_and_delete_empty_category(client, owner):
    category = client.post("/api/categories", headers=owner.headers, json={"name": "Snacks"}).json()["data"]

    renamed = client.put(f"/api/categories/{category['id']}", headers=owner.headers, json={"name": "Treats"})
    assert renamed.json()["data"]["name"] == "Treats"

    assert client.delete(f"/api/categories/{category['id']}", headers=owner.headers).status_code == 200
    assert client.get(f"/api/categories/{category['id']}").status_code == 404


# --- Products ---
def test_product_listing_filters(client, catalog):
    everything = client.get("/api/products").json()["data"]
    assert everything["total_products"] == 2
    assert everything["products"][0]["category"]["name"] == "Produce"
    assert everything["products"][0]["shop"]["id"] == catalog.shop_id

    cheap = client.get("/api/products", params={"max_price": 2}).json()["data"]
    assert [p["name"] for p in cheap["products"]] == ["Fresh Carrots"]

    searched = client.get("/api/products", params={"search": "apple"}).json()["data"]
    assert [p["name"] for p in searched["products"]] == ["Organic Apples"]

    paged = client.get("/api/products", params={"limit": 1, "offset": 1}).json()["data"]
    assert len(paged["products"]) == 1
    assert paged["current_page"] == 2
    assert paged["total_pages"] == 2


def test_product_detail_and_missing_product(client, catalog):
    detail = client.get(f"/api/products/{catalog.apples['id']}").json()["data"]
    assert detail["name"] == "Organic Apples"
    assert detail["recent_reviews"] == []
    assert detail["shop"]["id"] == catalog.shop_id

    missing = client.get("/api/products/does-not-exist")
    assert missing.status_code == 404
    assert missing.json()["message"] == "Product not found"


def test_product_needs_existing_category(client, owner, catalog):
    response = client.post("/api/products", headers=owner.headers, json={
        "name": "Mystery Box", "price": 5, "category_id": "nope",
    })
    assert response.status_code == 404
    assert response.json()["message"] == "Category not found"


def test_only_the_shop_owner_can_change_a_product(client, owner, catalog):
    rival = register(client, "owner", "rival@example.com", name="Rita")
    headers = auth_header(rival["access_token"])

    response = client.put(f"/api/products/{catalog.apples['id']}", headers=headers, json={"price": 0.5})
    assert response.status_code == 403
    assert client.delete(f"/api/products/{catalog.apples['id']}", headers=headers).status_code == 403

    updated = client.put(f"/api/products/{catalog.apples['id']}", headers=owner.headers, json={"price": 4.49})
    assert updated.json()["data"]["price"] == 4.49


def test_owner_lists_and_deletes_own_products(client, owner, catalog):
    mine = client.get("/api/products/shop/owner", headers=owner.headers).json()["data"]
    assert {p["name"] for p in mine} == {"Organic Apples", "Fresh Carrots"}

    assert client.delete(f"/api/products/{catalog.carrots['id']}", headers=owner.headers).status_code == 200
    assert client.get(f"/api/products/{catalog.carrots['id']}").status_code == 404


def test_product_image_upload(client, owner, catalog, settings):
    response = client.put(
        f"/api/products/{catalog.apples['id']}/image",
        headers=owner.headers,
        files={"image": ("apple.png", b"\x89PNG fake", "image/png")},
    )
    assert response.status_code == 200, response.text
    image = response.json()["data"]["image"]
    assert image.startswith("/uploads/products/")
    assert image.endswith("_apple.png")

    served = client.get(image)
    assert served.status_code == 200
    assert served.content == b"\x89PNG fake"


def test_upload_rejects_non_images_and_large_files(client, owner, catalog):
    url = f"/api/products/{catalog.apples['id']}/image"

    text_file = client.put(url, headers=owner.headers, files={"image": ("notes.txt", b"hello", "text/plain")})
    assert text_file.status_code == 400
    assert text_file.json()["message"] == "Only image files are allowed!"

    too_big = client.put(url, headers=owner.headers, files={"image": ("big.JPG", b"x" * 2048, "image/jpeg")})
    assert too_big.status_code == 400


# --- Shops ---
def test_shop_profile_update_and_public_view(client, owner, catalog):
    response = client.put("/api/shops/profile", headers=owner.headers, json={
        "shop_name": "Olive's Market", "opening_time": "07:30", "minimum_order": 12.5,
    })
    assert response.status_code == 200
    assert response.json()["data"]["shop_name"] == "Olive's Market"

    public = client.get(f"/api/shops/{catalog.shop_id}/public").json()["data"]
    assert public["opening_time"] == "07:30"
    assert public["user"]["name"] == "Olive"

    assert client.get("/api/shops/missing/public").status_code == 404


def test_shop_profile_rejects_bad_values(client, owner):
    response = client.put("/api/shops/profile", headers=owner.headers, json={"delivery_radius": 0})
    assert response.status_code == 400
    response = client.put("/api/shops/profile", headers=owner.headers, json={"closing_time": "25:00"})
    assert response.status_code == 400


def test_nearby_shops(client, catalog):
    assert client.get("/api/shops/nearby").status_code == 400

    near = client.get("/api/shops/nearby", params={"latitude": 40.7130, "longitude": -74.0065}).json()["data"]
    assert [s["id"] for s in near] == [catalog.shop_id]
    assert near[0]["distance"] == 0.05

    far = client.get("/api/shops/nearby", params={"latitude": 41.5, "longitude": -74.0}).json()["data"]
    assert far == []


def test_all_shops_search(client, catalog):
    register(client, "owner", "baker@example.com", name="Barry")

    everything = client.get("/api/shops/all").json()["data"]
    assert everything["total_shops"] == 2

    found = client.get("/api/shops/all", params={"search": "Barry"}).json()["data"]
    assert [s["shop_name"] for s in found["shops"]] == ["Barry's Shop"]
