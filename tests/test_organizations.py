from conftest import auth_headers, make_org, make_profile


def test_create_organization(client, headers):
    response = client.post(
        "/api/organizations",
        json={"name": "Northwind Clients", "slug": "northwind", "type": "client"},
        headers=headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["slug"] == "northwind"
    assert body["type"] == "client"


def test_duplicate_slug_conflicts(client, headers):
    payload = {"name": "Northwind", "slug": "northwind"}
    assert client.post("/api/organizations", json=payload, headers=headers).status_code == 201

    response = client.post("/api/organizations", json={**payload, "name": "Other"}, headers=headers)

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "DUPLICATE_ENTRY"
    assert "northwind" in body["message"]


def test_slug_change_to_taken_slug_conflicts(client, headers, org):
    make_org("taken")

    response = client.patch(f"/api/organizations/{org.id}", json={"slug": "taken"}, headers=headers)

    assert response.status_code == 409


def test_invalid_slug_is_rejected(client, headers):
    response = client.post("/api/organizations", json={"name": "Bad", "slug": "Bad Slug"}, headers=headers)

    assert response.status_code == 422


def test_standard_user_sees_only_own_organization(client, headers, org, other_org):
    response = client.get("/api/organizations", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["id"] == str(org.id)

    assert client.get(f"/api/organizations/{other_org.id}", headers=headers).status_code == 404


def test_platform_admin_sees_all_organizations(client, org, other_org):
    platform_admin = make_profile(org, "admin", email="ops@platform.test")
    headers = auth_headers(platform_admin, platform_role="platform_admin")

    response = client.get("/api/organizations", headers=headers)

    assert response.json()["total"] == 2
    assert client.get(f"/api/organizations/{other_org.id}", headers=headers).status_code == 200


def test_viewer_cannot_create_organization(client, viewer_headers):
    response = client.post("/api/organizations", json={"name": "X", "slug": "x"}, headers=viewer_headers)

    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"


def test_delete_blocked_while_profiles_remain(client, headers, org):
    response = client.delete(f"/api/organizations/{org.id}", headers=headers)

    assert response.status_code == 409
    assert response.json()["code"] == "RESOURCE_IN_USE"


def test_empty_patch_is_bad_request(client, headers, org):
    response = client.patch(f"/api/organizations/{org.id}", json={}, headers=headers)

    assert response.status_code == 400
    assert response.json()["message"] == "No fields to update"


def test_profile_me(client, headers, admin):
    response = client.get("/api/profiles/me", headers=headers)

    assert response.status_code == 200
    assert response.json()["email"] == admin.email
