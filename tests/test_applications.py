from conftest import PNG_BYTES


def _apply(client, user, files=None, **fields):
    data = {"business_address": "88 Rizal Ave", "phone": "09171234567", "business_name": "Tomas Rentals"}
    data.update(fields)
    if files is None:
        files = {"government_id": ("id.png", PNG_BYTES, "image/png")}
    return client.post("/api/account/landlord-application", headers=user["headers"], data=data, files=files)


def test_submit_application_uploads_documents(client, store, tenant):
    resp = _apply(
        client,
        tenant,
        files={
            "government_id": ("id.png", PNG_BYTES, "image/png"),
            "property_document": ("title.pdf", b"%PDF-1.4", "application/pdf"),
        },
    )
    assert resp.status_code == 200
    app = resp.json()["application"]
    assert app["status"] == "pending"
    assert app["government_id_url"].startswith(f"https://storage.local/applications/{tenant['id']}/government_id_")
    assert app["property_document_url"].startswith(f"https://storage.local/applications/{tenant['id']}/property_doc_")
    assert {bucket for bucket, _ in store.objects} == {"applications"}

    mine = client.get("/api/account/landlord-application", headers=tenant["headers"]).json()["application"]
    assert mine["id"] == app["id"]


def test_government_id_is_required(client, tenant):
    resp = _apply(client, tenant, files={})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Government ID is required"}


def test_missing_fields_rejected(client, tenant):
    resp = _apply(client, tenant, phone="")
    assert resp.status_code == 400
    assert "phone" in resp.json()["error"]


def test_one_open_application_per_user(client, tenant):
    assert _apply(client, tenant).status_code == 200
    again = _apply(client, tenant)
    assert again.status_code == 409


def test_landlords_cannot_apply(client, landlord):
    assert _apply(client, landlord).status_code == 409


def test_admin_routes_require_admin(client, tenant):
    assert client.get("/api/admin/applications", headers=tenant["headers"]).status_code == 403


def test_admin_approves_application(client, store, tenant, admin):
    app_id = _apply(client, tenant).json()["application"]["id"]

    listing = client.get("/api/admin/applications", headers=admin["headers"]).json()
    assert listing["counts"]["pending"] == 1
    assert listing["applications"][0]["applicant"]["email"] == tenant["email"]

    review = client.post(f"/api/admin/applications/{app_id}/review", headers=admin["headers"])
    assert review.json()["application"]["status"] == "under_review"

    approved = client.post(f"/api/admin/applications/{app_id}/approve", headers=admin["headers"]).json()["application"]
    assert approved["status"] == "approved"
    assert approved["reviewed_at"]
    assert store.select_one("profiles", {"id": tenant["id"]})["role"] == "landlord"
    me = client.get("/api/auth/me", headers=tenant["headers"]).json()["user"]
    assert me["home_path"] == "/landlord/dashboard"

    twice = client.post(f"/api/admin/applications/{app_id}/approve", headers=admin["headers"])
    assert twice.status_code == 409


def test_admin_rejects_with_reason(client, store, tenant, admin):
    app_id = _apply(client, tenant).json()["application"]["id"]
    blank = client.post(f"/api/admin/applications/{app_id}/reject", headers=admin["headers"], json={"reason": " "})
    assert blank.json() == {"error": "Please provide a reason for rejection"}

    rejected = client.post(
        f"/api/admin/applications/{app_id}/reject", headers=admin["headers"], json={"reason": "ID unreadable"}
    ).json()["application"]
    assert rejected["status"] == "rejected"
    assert rejected["rejection_reason"] == "ID unreadable"
    assert store.select_one("profiles", {"id": tenant["id"]})["role"] == "tenant"

    # A rejected application no longer blocks a new one.
    assert _apply(client, tenant).status_code == 200
    filtered = client.get("/api/admin/applications?status=rejected", headers=admin["headers"]).json()
    assert [a["id"] for a in filtered["applications"]] == [app_id]
    assert filtered["counts"]["pending"] == 1


def test_unknown_application_is_404(client, admin):
    resp = client.post("/api/admin/applications/missing/approve", headers=admin["headers"])
    assert resp.status_code == 404
    assert resp.json() == {"error": "Application not found"}
