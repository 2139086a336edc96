def deliver(client, owner, buyer, address, product):
    order = client.post("/api/orders", headers=buyer.headers, json={
        "address_id": address["id"],
        "payment_method": "Card",
        "items": [{"product_id": product["id"], "quantity": 1}],
    }).json()["data"]
    client.post(f"/api/orders/{order['id']}/accept", headers=owner.headers)
    for status in ("Preparing", "Out for Delivery", "Delivered"):
        client.put(f"/api/orders/{order['id']}/status", headers=owner.headers, json={"status": status})
    return order


def test_review_lifecycle(client, owner, buyer, catalog, buyer_address):
    apples = catalog.apples

    early = client.post("/api/reviews", headers=buyer.headers, json={"product_id": apples["id"], "rating": 5})
    assert early.status_code == 400

    deliver(client, owner, buyer, buyer_address, apples)
    created = client.post("/api/reviews", headers=buyer.headers,
                          json={"product_id": apples["id"], "rating": 4, "comment": "Crunchy"})
    assert created.status_code == 201, created.text
    review = created.json()["data"]
    assert review["user"]["name"] == "Bruno"

    product = client.get(f"/api/products/{apples['id']}").json()["data"]
    assert product["rating"] == 4.0
    assert product["review_count"] == 1
    assert [r["comment"] for r in product["recent_reviews"]] == ["Crunchy"]

    updated = client.put(f"/api/reviews/{review['id']}", headers=buyer.headers, json={"rating": 2})
    assert updated.json()["data"]["rating"] == 2
    assert client.get(f"/api/products/{apples['id']}").json()["data"]["rating"] == 2.0

    page = client.get(f"/api/reviews/product/{apples['id']}").json()["data"]
    assert page["total_reviews"] == 1

    mine = client.get("/api/reviews/user", headers=buyer.headers).json()["data"]
    assert mine[0]["product"]["name"] == "Organic Apples"

    assert client.delete(f"/api/reviews/{review['id']}", headers=buyer.headers).status_code == 200
    product = client.get(f"/api/products/{apples['id']}").json()["data"]
    assert product["rating"] == 0.0
    assert product["review_count"] == 0


def test_rating_out_of_range_is_rejected(client, buyer, catalog):
    response = client.post("/api/reviews", headers=buyer.headers,
                           json={"product_id": catalog.apples["id"], "rating": 6})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "rating"


def test_owners_cannot_review(client, owner, catalog):
    response = client.post("/api/reviews", headers=owner.headers,
                           json={"product_id": catalog.apples["id"], "rating": 5})
    assert response.status_code == 403
