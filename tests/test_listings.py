import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import PNG_BYTES, build_property, make_user
from management import geocoding, listings
from management.errors import UpstreamError
from management.geocoding import NominatimGeocoder, address_query
from server.app import create_app
from telemetry import metrics


def _create_listing(client, landlord, prop, **overrides):
    payload = {"property_id": prop["id"], "title": "Cozy Studio near UST", "property_type": "boarding_house", "city": "Manila"}
    payload.update(overrides)
    return client.post("/api/listings", headers=landlord["headers"], json=payload)


def _upload(client, landlord, listing_id, count=1):
    files = [("files", (f"room{i}.png", PNG_BYTES, "image/png")) for i in range(count)]
    return client.post(f"/api/listings/{listing_id}/photos", headers=landlord["headers"], files=files)


@pytest.fixture()
def listing(client, store, landlord):
    prop = build_property(store, landlord)
    return _create_listing(client, landlord, prop).json()["listing"]


def test_slugify():
    slug = listings.slugify("Cozy Studio, near U.S.T.!")
    assert slug.startswith("cozy-studio-near-u-s-t-")
    assert listings.slugify("").startswith("listing-")


def test_cover_photo_prefers_primary():
    assert listings.cover_photo([]) is None
    photos = [
        {"url": "b", "display_order": 1, "is_primary": True},
        {"url": "a", "display_order": 0, "is_primary": False},
    ]
    assert listings.cover_photo(photos)["url"] == "b"
    photos[0]["is_primary"] = False
    assert listings.cover_photo(photos)["url"] == "a"


def test_address_query_skips_blank_parts():
    listing = {"display_address": "12 Mabini St", "barangay": " ", "city": "Manila"}
    assert address_query(listing) == "12 Mabini St, Manila, Philippines"


def test_create_listing_defaults(listing, landlord):
    assert listing["status"] == "draft"
    assert listing["landlord_id"] == landlord["id"]
    assert listing["view_count"] == 0
    assert listing["slug"].startswith("cozy-studio-near-ust-")


def test_create_listing_validation(client, store, landlord, listing):
    prop = store.select_one("properties", {"id": listing["property_id"]})
    assert _create_listing(client, landlord, prop).status_code == 409
    other_prop = build_property(store, landlord, "Second")
    missing = _create_listing(client, landlord, other_prop, city="")
    assert missing.json() == {"error": "Missing required fields: city"}


def test_list_my_listings_with_stats_and_filters(client, store, landlord, listing):
    second = _create_listing(client, landlord, build_property(store, landlord, "B"), title="Family Unit", city="Cebu").json()["listing"]
    client.post(f"/api/listings/{second['id']}/toggle", headers=landlord["headers"])
    build_property(store, landlord, "Unlisted")

    body = client.get("/api/listings", headers=landlord["headers"]).json()
    assert body["stats"]["total"] == 2
    assert body["stats"]["published"] == 1
    assert body["stats"]["drafts"] == 1
    assert [p["name"] for p in body["available_properties"]] == ["Unlisted"]

    cebu = client.get("/api/listings?search=CEBU", headers=landlord["headers"]).json()["listings"]
    assert [l["id"] for l in cebu] == [second["id"]]
    drafts = client.get("/api/listings?status=draft", headers=landlord["headers"]).json()["listings"]
    assert [l["id"] for l in drafts] == [listing["id"]]
    assert drafts[0]["cover_photo"] is None
    assert drafts[0]["photo_count"] == 0
    bogus = client.get("/api/listings?status=live", headers=landlord["headers"])
    assert bogus.status_code == 400


def test_toggle_publish_sets_published_at_once(client, landlord, listing):
    published = client.post(f"/api/listings/{listing['id']}/toggle", headers=landlord["headers"]).json()["listing"]
    assert published["status"] == "published"
    first_published_at = published["published_at"]
    paused = client.post(f"/api/listings/{listing['id']}/toggle", headers=landlord["headers"]).json()["listing"]
    assert paused["status"] == "paused"
    again = client.post(f"/api/listings/{listing['id']}/toggle", headers=landlord["headers"]).json()["listing"]
    assert again["published_at"] == first_published_at


def test_update_ignores_protected_fields_and_replaces_amenities(client, store, landlord, listing):
    amenity_ids = [a["id"] for a in client.get("/api/amenities").json()["amenities"][:3]]
    resp = client.patch(
        f"/api/listings/{listing['id']}",
        headers=landlord["headers"],
        json={
            "changes": {"headline": "Steps from campus", "view_count": 999, "slug": "hijack", "price_range_min": 3000},
            "publish": True,
            "amenity_ids": amenity_ids,
        },
    )
    updated = resp.json()["listing"]
    assert updated["headline"] == "Steps from campus"
    assert updated["view_count"] == 0
    assert updated["slug"] == listing["slug"]
    assert updated["status"] == "published"
    assert updated["published_at"]

    client.patch(
        f"/api/listings/{listing['id']}", headers=landlord["headers"], json={"amenity_ids": amenity_ids[:1]}
    )
    edit = client.get(f"/api/listings/{listing['id']}/edit", headers=landlord["headers"]).json()
    assert edit["amenity_ids"] == amenity_ids[:1]
    assert len(edit["amenities"]) == len(listings.DEFAULT_AMENITIES)


def test_update_rejects_inverted_price_range(client, landlord, listing):
    resp = client.patch(
        f"/api/listings/{listing['id']}",
        headers=landlord["headers"],
        json={"changes": {"price_range_min": 5000, "price_range_max": 3000}},
    )
    assert resp.status_code == 400


def test_update_cannot_publish_through_status_field(client, landlord, listing):
    resp = client.patch(
        f"/api/listings/{listing['id']}", headers=landlord["headers"], json={"changes": {"status": "published"}}
    )
    updated = resp.json()["listing"]
    assert updated["status"] == "draft"
    assert updated["published_at"] is None
    assert client.get("/api/browse").json()["listings"] == []


def test_update_with_unknown_amenity_saves_nothing(client, landlord, listing):
    resp = client.patch(
        f"/api/listings/{listing['id']}",
        headers=landlord["headers"],
        json={"changes": {"title": "Renamed"}, "amenity_ids": ["nope"]},
    )
    assert resp.json() == {"error": "Unknown amenities: nope"}
    edit = client.get(f"/api/listings/{listing['id']}/edit", headers=landlord["headers"]).json()
    assert edit["listing"]["title"] == listing["title"]


def test_update_rejects_non_numeric_price(client, landlord, listing):
    resp = client.patch(
        f"/api/listings/{listing['id']}", headers=landlord["headers"], json={"changes": {"price_range_min": "abc"}}
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "price_range_min must be a number"}


def test_other_landlord_cannot_edit(client, store, listing):
    intruder = make_user(store, "Intruder", "intruder@example.com", "landlord")
    resp = client.post(f"/api/listings/{listing['id']}/toggle", headers=intruder["headers"])
    assert resp.status_code == 403


def test_delete_listing_removes_photos_from_storage(client, store, landlord, listing):
    _upload(client, landlord, listing["id"], 2)
    assert len(store.objects) == 2
    assert client.delete(f"/api/listings/{listing['id']}", headers=landlord["headers"]).json() == {"ok": True}
    assert store.objects == {}
    assert store.count("listing_photos") == 0
    assert store.select_one("property_listings", {"id": listing["id"]}) is None


def test_geocode_listing(client, store, landlord, listing, geocoder):
    client.patch(
        f"/api/listings/{listing['id']}",
        headers=landlord["headers"],
        json={"changes": {"display_address": "12 Mabini St", "barangay": "Sampaloc"}},
    )
    resp = client.post(f"/api/listings/{listing['id']}/geocode", headers=landlord["headers"])
    assert resp.json()["location"]["lat"] == pytest.approx(14.5995)
    assert geocoder.queries == ["12 Mabini St, Sampaloc, Manila, Philippines"]
    stored = store.select_one("property_listings", {"id": listing["id"]})
    assert (stored["lat"], stored["lng"]) == (14.5995, 120.9842)

    geocoder.result = None
    miss = client.post(f"/api/listings/{listing['id']}/geocode", headers=landlord["headers"])
    assert miss.status_code == 404


def test_nominatim_geocoder_parses_first_result(monkeypatch):
    seen = {}

    def fake_get(url, params=None, headers=None, timeout=None):
        seen["params"] = params
        body = [{"lat": "14.6", "lon": "121.0", "display_name": "Sampaloc, Manila"}] if params["q"] != "nowhere" else []
        return httpx.Response(200, json=body, request=httpx.Request("GET", url))

    monkeypatch.setattr(geocoding.httpx, "get", fake_get)
    geocoder = NominatimGeocoder("https://geo.test/search")
    assert geocoder.lookup("Sampaloc, Manila") == {"lat": 14.6, "lng": 121.0, "display_name": "Sampaloc, Manila"}
    assert seen["params"]["format"] == "json"
    assert geocoder.lookup("nowhere") is None
    assert metrics.fetch_metrics() == []


def test_nominatim_refusal_becomes_upstream_error(client, store, landlord, listing, monkeypatch):
    def refused(url, params=None, headers=None, timeout=None):
        return httpx.Response(429, json={"error": "slow down"}, request=httpx.Request("GET", url))

    monkeypatch.setattr(geocoding.httpx, "get", refused)
    with pytest.raises(UpstreamError):
        NominatimGeocoder("https://geo.test/search").lookup("Sampaloc, Manila")

    geocoder = NominatimGeocoder("https://geo.test/search")
    app = create_app(store=store, ai_client=None, settings=client.app.state.settings, geocoder=geocoder)
    with TestClient(app) as live:
        resp = live.post(f"/api/listings/{listing['id']}/geocode", headers=landlord["headers"])
    assert resp.status_code == 502
    assert resp.json() == {"error": "Address lookup service is unavailable. Please try again later."}


def test_public_browse_and_detail(client, store, landlord, listing):
    amenity = client.get("/api/amenities").json()["amenities"][0]
    client.patch(
        f"/api/listings/{listing['id']}",
        headers=landlord["headers"],
        json={
            "changes": {"price_range_min": 4000, "contact_phone": "0917", "show_phone": False},
            "publish": True,
            "amenity_ids": [amenity["id"]],
        },
    )
    _upload(client, landlord, listing["id"], 2)
    second_photo = store.select("listing_photos", order="display_order")[1]
    client.post(f"/api/photos/{second_photo['id']}/primary", headers=landlord["headers"])

    results = client.get("/api/browse?city=manila").json()["listings"]
    assert [l["id"] for l in results] == [listing["id"]]
    assert results[0]["cover_photo"] == second_photo["url"]
    assert client.get("/api/browse?max_price=3000").json()["listings"] == []
    assert client.get("/api/browse?q=studio").json()["listings"][0]["id"] == listing["id"]

    detail = client.get(f"/api/browse/{listing['id']}").json()
    assert detail["listing"]["view_count"] == 1
    assert detail["listing"]["contact_phone"] is None
    assert detail["photos"][0]["id"] == second_photo["id"]
    assert detail["amenities"] == [amenity["name"]]
    assert client.get(f"/api/browse/{listing['id']}").json()["listing"]["view_count"] == 2


def test_drafts_are_not_public(client, listing):
    assert client.get(f"/api/browse/{listing['id']}").status_code == 404
    assert client.get("/api/browse").json()["listings"] == []


def test_upload_photos_first_is_primary(client, store, landlord, listing):
    photos = _upload(client, landlord, listing["id"], 2).json()["photos"]
    assert [p["display_order"] for p in photos] == [0, 1]
    assert [p["is_primary"] for p in photos] == [True, False]
    assert all(p["photo_type"] == "interior" for p in photos)
    assert photos[0]["storage_path"].startswith(f"{landlord['id']}/{listing['id']}/")
    assert photos[0]["storage_path"].endswith("-0.png")

    more = _upload(client, landlord, listing["id"], 1).json()["photos"]
    assert more[0]["display_order"] == 2
    assert more[0]["is_primary"] is False


def test_upload_rejects_non_images(client, landlord, listing):
    resp = client.post(
        f"/api/listings/{listing['id']}/photos",
        headers=landlord["headers"],
        files=[("files", ("notes.txt", b"hello", "text/plain"))],
    )
    assert resp.status_code == 400


def test_set_primary_keeps_exactly_one(client, store, landlord, listing):
    photos = _upload(client, landlord, listing["id"], 3).json()["photos"]
    client.post(f"/api/photos/{photos[2]['id']}/primary", headers=landlord["headers"])
    rows = store.select("listing_photos", {"listing_id": listing["id"]})
    assert [p["id"] for p in rows if p["is_primary"]] == [photos[2]["id"]]


def test_update_photo_type_and_caption(client, landlord, listing):
    photo = _upload(client, landlord, listing["id"]).json()["photos"][0]
    resp = client.patch(
        f"/api/photos/{photo['id']}", headers=landlord["headers"], json={"photo_type": "exterior", "caption": " Front "}
    )
    assert resp.json()["photo"]["photo_type"] == "exterior"
    assert resp.json()["photo"]["caption"] == "Front"
    bad = client.patch(f"/api/photos/{photo['id']}", headers=landlord["headers"], json={"photo_type": "selfie"})
    assert bad.status_code == 400


def test_delete_primary_promotes_next(client, store, landlord, listing):
    photos = _upload(client, landlord, listing["id"], 3).json()["photos"]
    remaining = client.post(
        "/api/photos/delete", headers=landlord["headers"], json={"photo_ids": [photos[0]["id"]]}
    ).json()["photos"]
    assert [p["id"] for p in remaining] == [photos[1]["id"], photos[2]["id"]]
    assert remaining[0]["is_primary"] is True
    assert [p["display_order"] for p in remaining] == [0, 1]
    assert ("listings", photos[0]["storage_path"]) not in store.objects


def test_move_photo_uses_splice_semantics(client, landlord, listing):
    ids = [p["id"] for p in _upload(client, landlord, listing["id"], 4).json()["photos"]]
    moved = client.post(
        f"/api/listings/{listing['id']}/photos/{ids[0]}/move", headers=landlord["headers"], json={"target_index": 2}
    ).json()["photos"]
    assert [p["id"] for p in moved] == [ids[1], ids[2], ids[0], ids[3]]
    assert [p["display_order"] for p in moved] == [0, 1, 2, 3]

    out_of_range = client.post(
        f"/api/listings/{listing['id']}/photos/{ids[0]}/move", headers=landlord["headers"], json={"target_index": 9}
    )
    assert out_of_range.status_code == 400


def test_reorder_requires_every_photo(client, landlord, listing):
    ids = [p["id"] for p in _upload(client, landlord, listing["id"], 3).json()["photos"]]
    ordered = client.post(
        f"/api/listings/{listing['id']}/photos/order", headers=landlord["headers"], json={"photo_ids": ids[::-1]}
    ).json()["photos"]
    assert [p["id"] for p in ordered] == ids[::-1]
    partial = client.post(
        f"/api/listings/{listing['id']}/photos/order", headers=landlord["headers"], json={"photo_ids": ids[:2]}
    )
    assert partial.status_code == 400
