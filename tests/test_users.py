import pytest


@pytest.mark.asyncio
async def test_register_duplicate_email(client):
    response = await client.post(
        "/users",
        json={"name": "Again", "email": "customer@email.com", "password": "whatever1"},
    )
    assert response.status_code == 409
    assert response.json()["detail"] == "Email already in use"


@pytest.mark.asyncio
async def test_register_rejects_malformed_payload(client):
    response = await client.post(
        "/users", json={"name": "Bad", "email": "not-an-email", "password": "whatever1"}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_current_user_never_exposes_password(client, customer_headers):
    response = await client.get("/users/me", headers=customer_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "customer@email.com"
    assert body["is_admin"] is False
    assert "password" not in body


@pytest.mark.asyncio
async def test_update_keeps_omitted_fields(client, customer_headers):
    response = await client.put("/users", json={"name": "New Name"}, headers=customer_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "New Name"
    assert body["email"] == "customer@email.com"


@pytest.mark.asyncio
async def test_update_email_to_someone_elses_fails(client, customer_headers):
    response = await client.put(
        "/users", json={"email": "other@email.com"}, headers=customer_headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_update_email_to_own_email_succeeds(client, customer_headers):
    response = await client.put(
        "/users", json={"email": "customer@email.com", "name": "Same"}, headers=customer_headers
    )
    assert response.status_code == 200
    assert response.json()["email"] == "customer@email.com"


@pytest.mark.asyncio
async def test_new_password_requires_old_password(client, customer_headers):
    response = await client.put(
        "/users", json={"password": "brandnew1"}, headers=customer_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_new_password_with_wrong_old_password(client, customer_headers):
    response = await client.put(
        "/users",
        json={"password": "brandnew1", "old_password": "wrongold"},
        headers=customer_headers,
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_password_change_takes_effect(client, customer_headers):
    response = await client.put(
        "/users",
        json={"password": "brandnew1", "old_password": "customerpass"},
        headers=customer_headers,
    )
    assert response.status_code == 200

    old = await client.post(
        "/sessions", data={"username": "customer@email.com", "password": "customerpass"}
    )
    assert old.status_code == 401
    new = await client.post(
        "/sessions", data={"username": "customer@email.com", "password": "brandnew1"}
    )
    assert new.status_code == 200


@pytest.mark.asyncio
async def test_non_admin_cannot_change_another_users_admin_flag(client, customer_headers, seed_users):
    other_id = seed_users["other"].id
    response = await client.put(
        f"/users/{other_id}", json={"is_admin": True}, headers=customer_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_non_admin_cannot_edit_another_user(client, customer_headers, seed_users):
    other_id = seed_users["other"].id
    response = await client.put(
        f"/users/{other_id}", json={"name": "Hacked"}, headers=customer_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_can_change_another_users_admin_flag(client, admin_headers, seed_users):
    other_id = seed_users["other"].id
    response = await client.put(
        f"/users/{other_id}", json={"is_admin": True}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["is_admin"] is True
    assert response.json()["name"] == "Other"


@pytest.mark.asyncio
async def test_update_missing_target_user(client, admin_headers):
    response = await client.put("/users/9999", json={"name": "Ghost"}, headers=admin_headers)
    assert response.status_code == 404
