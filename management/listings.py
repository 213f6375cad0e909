"""Landlord listings and the public browse/detail views built on them."""

from __future__ import annotations

import re
import uuid
from typing import Any, Dict, List, Optional

from management.common import get_or_404, index_by_id, now_iso, owned_property, parse_amount, require_text
from management.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from management.geocoding import address_query
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

LISTING_STATUSES = ("draft", "published", "paused", "archived")
PROTECTED_FIELDS = (
    "id",
    "created_at",
    "updated_at",
    "view_count",
    "inquiry_count",
    "slug",
    "landlord_id",
    "property_id",
)
EDITABLE_FIELDS = (
    "title",
    "headline",
    "description",
    "is_featured",
    "display_address",
    "city",
    "barangay",
    "landmark",
    "lat",
    "lng",
    "price_range_min",
    "price_range_max",
    "price_display",
    "property_type",
    "total_units",
    "available_units",
    "show_phone",
    "contact_phone",
    "show_email",
    "contact_email",
    "whatsapp_number",
    "facebook_page",
    "pets_allowed",
    "smoking_allowed",
    "visitors_allowed",
    "curfew_time",
    "gender_restriction",
    "min_lease_months",
    "max_lease_months",
    "deposit_months",
    "advance_months",
    "meta_description",
    "keywords",
)
PHOTO_BUCKET = "listings"

DEFAULT_AMENITIES = [
    ("WiFi", "wifi", "Utilities"),
    ("Water Included", "droplet", "Utilities"),
    ("Electricity Included", "zap", "Utilities"),
    ("Air Conditioning", "wind", "Comfort"),
    ("Furnished", "sofa", "Comfort"),
    ("Laundry Area", "shirt", "Facilities"),
    ("Kitchen Access", "utensils", "Facilities"),
    ("Parking", "car", "Facilities"),
    ("CCTV", "camera", "Security"),
    ("24/7 Security Guard", "shield", "Security"),
    ("Near Public Transport", "bus", "Location"),
    ("Near Schools", "graduation-cap", "Location"),
]

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    base = _SLUG_STRIP_RE.sub("-", (title or "").lower()).strip("-") or "listing"
    return f"{base[:60]}-{uuid.uuid4().hex[:6]}"


def _owned_listing(store, landlord: Dict[str, Any], listing_id: str) -> Dict[str, Any]:
    listing = get_or_404(store, "property_listings", listing_id, "Listing")
    if listing.get("landlord_id") != landlord["id"]:
        raise PermissionDeniedError("You do not own this listing")
    return listing


def cover_photo(photos: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Primary photo, else the first by display order."""
    if not photos:
        return None
    ordered = sorted(photos, key=lambda p: p.get("display_order") or 0)
    for photo in ordered:
        if photo.get("is_primary"):
            return photo
    return ordered[0]


def _photos_by_listing(store, listing_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = {lid: [] for lid in listing_ids}
    if not listing_ids:
        return grouped
    for photo in store.select("listing_photos", {"listing_id": listing_ids}):
        grouped.setdefault(photo["listing_id"], []).append(photo)
    return grouped


def _with_cover(store, listings: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    photos = _photos_by_listing(store, [l["id"] for l in listings])
    for listing in listings:
        cover = cover_photo(photos.get(listing["id"], []))
        listing["cover_photo"] = cover["url"] if cover else None
        listing["photo_count"] = len(photos.get(listing["id"], []))
    return listings


def create_listing(store, landlord: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    fields = require_text(payload, "property_id", "title", "property_type", "city")
    owned_property(store, landlord, fields["property_id"])
    if store.select_one("property_listings", {"property_id": fields["property_id"]}):
        raise ConflictError("This property already has a listing")
    stamp = now_iso()
    listing = store.insert(
        "property_listings",
        {
            "property_id": fields["property_id"],
            "landlord_id": landlord["id"],
            "title": fields["title"],
            "property_type": fields["property_type"],
            "city": fields["city"],
            "status": "draft",
            "is_featured": False,
            "slug": slugify(fields["title"]),
            "view_count": 0,
            "inquiry_count": 0,
            "published_at": None,
            "updated_at": stamp,
        },
    )
    logger.info("listing_created", extra={"listing_id": listing["id"], "landlord_id": landlord["id"]})
    return listing


def listing_stats(listings: List[Dict[str, Any]]) -> Dict[str, int]:
    return {
        "total": len(listings),
        "published": sum(1 for l in listings if l.get("status") == "published"),
        "drafts": sum(1 for l in listings if l.get("status") == "draft"),
        "total_views": sum(int(l.get("view_count") or 0) for l in listings),
        "total_inquiries": sum(int(l.get("inquiry_count") or 0) for l in listings),
    }


def list_my_listings(
    store, landlord: Dict[str, Any], *, search: Optional[str] = None, status: Optional[str] = None
) -> Dict[str, Any]:
    if status and status != "all" and status not in LISTING_STATUSES:
        raise ValidationError(f"Unknown listing status: {status}")
    listings = store.select("property_listings", {"landlord_id": landlord["id"]}, order="created_at", desc=True)
    stats = listing_stats(listings)
    query = (search or "").strip().lower()
    filtered = []
    for listing in listings:
        if query and query not in (listing.get("title") or "").lower() and query not in (listing.get("city") or "").lower():
            continue
        if status and status != "all" and listing.get("status") != status:
            continue
        filtered.append(listing)
    props = store.select("properties", {"landlord_id": landlord["id"]})
    listed = {l["property_id"] for l in listings}
    return {
        "listings": _with_cover(store, filtered),
        "stats": stats,
        "available_properties": [p for p in props if p["id"] not in listed],
    }


def get_listing_for_edit(store, landlord: Dict[str, Any], listing_id: str) -> Dict[str, Any]:
    listing = _owned_listing(store, landlord, listing_id)
    amenity_ids = [row["amenity_id"] for row in store.select("listing_amenities", {"listing_id": listing_id})]
    photos = store.select("listing_photos", {"listing_id": listing_id}, order="display_order")
    return {"listing": listing, "amenity_ids": amenity_ids, "photos": photos, "amenities": list_amenities(store)}


def toggle_publish(store, landlord: Dict[str, Any], listing_id: str) -> Dict[str, Any]:
    listing = _owned_listing(store, landlord, listing_id)
    new_status = "paused" if listing.get("status") == "published" else "published"
    values: Dict[str, Any] = {"status": new_status, "updated_at": now_iso()}
    if new_status == "published" and not listing.get("published_at"):
        values["published_at"] = now_iso()
    updated = store.update("property_listings", values, {"id": listing_id})[0]
    logger.info("listing_status_changed", extra={"listing_id": listing_id, "status": new_status})
    return updated


def update_listing(
    store,
    landlord: Dict[str, Any],
    listing_id: str,
    changes: Dict[str, Any],
    *,
    publish: bool = False,
    amenity_ids: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Apply landlord edits; status changes other than publishing go through toggle_publish."""
    listing = _owned_listing(store, landlord, listing_id)
    values = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and k not in PROTECTED_FIELDS}
    if "title" in values and not str(values["title"] or "").strip():
        raise ValidationError("Title cannot be empty")
    for key in ("price_range_min", "price_range_max"):
        if values.get(key) not in (None, ""):
            values[key] = parse_amount(values[key], key)
        elif key in values:
            values[key] = None
    low, high = values.get("price_range_min", listing.get("price_range_min")), values.get(
        "price_range_max", listing.get("price_range_max")
    )
    if low is not None and high is not None and parse_amount(low, "price_range_min") > parse_amount(
        high, "price_range_max"
    ):
        raise ValidationError("Minimum price cannot exceed maximum price")
    if amenity_ids is not None:
        known = {a["id"] for a in store.select("amenities")}
        unknown = [a for a in amenity_ids if a not in known]
        if unknown:
            raise ValidationError(f"Unknown amenities: {', '.join(unknown)}")

    if publish:
        values["status"] = "published"
        if not listing.get("published_at"):
            values["published_at"] = now_iso()
    values["updated_at"] = now_iso()
    updated = store.update("property_listings", values, {"id": listing_id})[0]

    if amenity_ids is not None:
        store.delete("listing_amenities", {"listing_id": listing_id})
        store.insert_many(
            "listing_amenities", [{"listing_id": listing_id, "amenity_id": a} for a in dict.fromkeys(amenity_ids)]
        )
    logger.info("listing_updated", extra={"listing_id": listing_id, "fields": sorted(values)})
    return updated


def delete_listing(store, landlord: Dict[str, Any], listing_id: str) -> None:
    _owned_listing(store, landlord, listing_id)
    photos = store.select("listing_photos", {"listing_id": listing_id})
    store.remove(PHOTO_BUCKET, [p["storage_path"] for p in photos if p.get("storage_path")])
    store.delete("listing_photos", {"listing_id": listing_id})
    store.delete("listing_amenities", {"listing_id": listing_id})
    store.delete("property_listings", {"id": listing_id})
    logger.info("listing_deleted", extra={"listing_id": listing_id, "photos_removed": len(photos)})


def geocode_listing(store, landlord: Dict[str, Any], listing_id: str, geocoder) -> Dict[str, Any]:
    listing = _owned_listing(store, landlord, listing_id)
    if not listing.get("city"):
        raise ValidationError("Add a city before looking up coordinates")
    match = geocoder.lookup(address_query(listing))
    if not match:
        raise NotFoundError(
            "Could not find coordinates for this address. Please try adding more details or manually enter lat/long."
        )
    store.update(
        "property_listings", {"lat": match["lat"], "lng": match["lng"], "updated_at": now_iso()}, {"id": listing_id}
    )
    return match


def list_amenities(store) -> List[Dict[str, Any]]:
    return sorted(store.select("amenities"), key=lambda a: ((a.get("category") or ""), a.get("name") or ""))


def seed_amenities(store) -> int:
    """Insert the default amenity catalog entries that are missing; returns how many were added."""
    existing = {a.get("name") for a in store.select("amenities")}
    added = 0
    for name, icon, category in DEFAULT_AMENITIES:
        if name in existing:
            continue
        store.insert("amenities", {"name": name, "icon": icon, "category": category})
        added += 1
    return added


def browse_listings(
    store,
    *,
    city: Optional[str] = None,
    query: Optional[str] = None,
    max_price: Optional[float] = None,
) -> List[Dict[str, Any]]:
    listings = store.select("property_listings", {"status": "published"}, order="published_at", desc=True)
    city_q = (city or "").strip().lower()
    text_q = (query or "").strip().lower()
    results = []
    for listing in listings:
        if city_q and (listing.get("city") or "").lower() != city_q:
            continue
        if text_q:
            haystack = " ".join(
                str(listing.get(k) or "") for k in ("title", "headline", "city", "barangay", "display_address")
            ).lower()
            if text_q not in haystack:
                continue
        if max_price is not None and listing.get("price_range_min") is not None:
            if float(listing["price_range_min"]) > max_price:
                continue
        results.append(listing)
    featured_first = sorted(results, key=lambda l: not l.get("is_featured"))
    return _with_cover(store, featured_first)


def public_listing(store, listing_id: str) -> Dict[str, Any]:
    """Published listing detail; counts as a view."""
    listing = store.select_one("property_listings", {"id": listing_id, "status": "published"})
    if not listing:
        raise NotFoundError("Listing not found")
    views = int(listing.get("view_count") or 0) + 1
    store.update("property_listings", {"view_count": views}, {"id": listing_id})
    listing["view_count"] = views
    photos = store.select("listing_photos", {"listing_id": listing_id}, order="display_order")
    photos.sort(key=lambda p: not p.get("is_primary"))
    amenity_ids = [row["amenity_id"] for row in store.select("listing_amenities", {"listing_id": listing_id})]
    amenities = index_by_id(store.select("amenities", {"id": amenity_ids})) if amenity_ids else {}
    if not listing.get("show_phone"):
        listing["contact_phone"] = None
    if not listing.get("show_email"):
        listing["contact_email"] = None
    return {
        "listing": listing,
        "photos": photos,
        "amenities": [amenities[a]["name"] for a in amenity_ids if a in amenities],
    }
