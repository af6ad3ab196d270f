import pytest


async def _create_order(client, headers, items, price=79.9, status="pending", payment_method="pix"):
    r = await client.post(
        "/orders",
        json={"status": status, "price": price, "payment_method": payment_method, "order_items": items},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    return r.json()["id"]


@pytest.mark.asyncio
async def test_create_order_snapshots_dish_names(client, make_dish, admin_headers, customer_headers):
    salad = await make_dish(name="Salada Ravanello")
    pasta = await make_dish(name="Spaguetti Gambe")

    order_id = await _create_order(client, customer_headers, [
        {"dish_id": salad, "quantity": 2},
        {"dish_id": pasta, "quantity": 1},
    ])

    # renaming the dish afterwards must not touch the order
    response = await client.put(
        f"/dishes/{salad}", data={"name": "Salada Nova"}, headers=admin_headers
    )
    assert response.status_code == 200

    order = (await client.get(f"/orders/{order_id}", headers=customer_headers)).json()
    assert order["status"] == "pending"
    assert [(i["dish_id"], i["name"], i["quantity"]) for i in order["order_items"]] == [
        (salad, "Salada Ravanello", 2),
        (pasta, "Spaguetti Gambe", 1),
    ]


@pytest.mark.asyncio
async def test_create_order_with_unknown_dish(client, customer_headers):
    response = await client.post(
        "/orders",
        json={"status": "pending", "price": 10, "payment_method": "pix",
              "order_items": [{"dish_id": 999, "quantity": 1}]},
        headers=customer_headers,
    )
    assert response.status_code == 404

    assert (await client.get("/orders", headers=customer_headers)).json() == []


@pytest.mark.asyncio
async def test_get_missing_order_returns_empty_projection(client, customer_headers):
    response = await client.get("/orders/999", headers=customer_headers)
    assert response.status_code == 200
    assert response.json() == {"order_items": []}


@pytest.mark.asyncio
async def test_update_order_merges_supplied_fields(client, make_dish, admin_headers, customer_headers):
    dish = await make_dish()
    order_id = await _create_order(client, customer_headers, [{"dish_id": dish, "quantity": 1}])

    response = await client.put(
        f"/orders/{order_id}", json={"status": "delivered"}, headers=admin_headers
    )
    assert response.status_code == 200
    order = response.json()
    assert order["status"] == "delivered"
    assert order["price"] == 79.9
    assert order["payment_method"] == "pix"


@pytest.mark.asyncio
async def test_update_order_is_admin_only(client, make_dish, customer_headers):
    dish = await make_dish()
    order_id = await _create_order(client, customer_headers, [{"dish_id": dish, "quantity": 1}])

    response = await client.put(
        f"/orders/{order_id}", json={"status": "delivered"}, headers=customer_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_missing_order(client, admin_headers):
    response = await client.put("/orders/999", json={"status": "x"}, headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_order(client, make_dish, customer_headers):
    dish = await make_dish()
    order_id = await _create_order(client, customer_headers, [{"dish_id": dish, "quantity": 1}])

    response = await client.delete(f"/orders/{order_id}", headers=customer_headers)
    assert response.status_code == 200
    assert (await client.get(f"/orders/{order_id}", headers=customer_headers)).json() == {
        "order_items": []
    }


@pytest.mark.asyncio
async def test_admin_lists_every_order_with_full_items(
    client, make_dish, admin_headers, customer_headers, other_headers
):
    dish = await make_dish(name="Macarons")
    mine = await _create_order(client, customer_headers, [{"dish_id": dish, "quantity": 3}])
    theirs = await _create_order(client, other_headers, [{"dish_id": dish, "quantity": 1}])

    response = await client.get("/orders", headers=admin_headers)
    assert response.status_code == 200
    orders = response.json()
    assert [o["id"] for o in orders] == [theirs, mine]
    assert [o["created_by"] for o in orders] == ["Other", "Customer"]
    assert orders[1]["dishes"][0]["dish_id"] == dish
    assert orders[1]["dishes"][0]["name"] == "Macarons"
    assert orders[1]["dishes"][0]["quantity"] == 3


@pytest.mark.asyncio
async def test_customer_lists_only_own_orders_with_reduced_items(
    client, make_dish, customer_headers, other_headers
):
    dish = await make_dish(name="Macarons")
    mine = await _create_order(client, customer_headers, [{"dish_id": dish, "quantity": 3}])
    await _create_order(client, other_headers, [{"dish_id": dish, "quantity": 1}])

    response = await client.get("/orders", headers=customer_headers)
    assert response.status_code == 200
    orders = response.json()
    assert [o["id"] for o in orders] == [mine]
    assert "created_by" not in orders[0]
    assert orders[0]["dishes"] == [{"name": "Macarons", "quantity": 3}]
