from __future__ import annotations

from typing import Any, Dict, List, Optional

from management.common import FileBlob, get_or_404, timestamp_ms
from management.errors import NotFoundError, PermissionDeniedError, ValidationError
from management.listings import PHOTO_BUCKET
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

PHOTO_TYPES = ("cover", "exterior", "interior", "amenity", "unit", "floor_plan", "document")
DEFAULT_PHOTO_TYPE = "interior"
MAX_CAPTION = 200


def _owned_listing(store, landlord: Dict[str, Any], listing_id: str) -> Dict[str, Any]:
    listing = get_or_404(store, "property_listings", listing_id, "Listing")
    if listing.get("landlord_id") != landlord["id"]:
        raise PermissionDeniedError("You do not own this listing")
    return listing


def _owned_photo(store, landlord: Dict[str, Any], photo_id: str) -> Dict[str, Any]:
    photo = get_or_404(store, "listing_photos", photo_id, "Photo")
    _owned_listing(store, landlord, photo["listing_id"])
    return photo


def list_photos(store, landlord: Dict[str, Any], listing_id: str) -> List[Dict[str, Any]]:
    _owned_listing(store, landlord, listing_id)
    return store.select("listing_photos", {"listing_id": listing_id}, order="display_order")


def upload_photos(store, landlord: Dict[str, Any], listing_id: str, files: List[FileBlob]) -> List[Dict[str, Any]]:
    _owned_listing(store, landlord, listing_id)
    if not files:
        raise ValidationError("Select at least one photo")
    for blob in files:
        if not blob.content_type.startswith("image/"):
            raise ValidationError(f"{blob.filename} is not an image")
    existing = store.count("listing_photos", {"listing_id": listing_id})
    stamp = timestamp_ms()
    created = []
    for i, blob in enumerate(files):
        path = f"{landlord['id']}/{listing_id}/{stamp}-{i}.{blob.extension}"
        store.upload(PHOTO_BUCKET, path, blob.data, blob.content_type)
        created.append(
            store.insert(
                "listing_photos",
                {
                    "listing_id": listing_id,
                    "url": store.public_url(PHOTO_BUCKET, path),
                    "storage_path": path,
                    "alt_text": blob.filename,
                    "caption": None,
                    "photo_type": DEFAULT_PHOTO_TYPE,
                    "display_order": existing + i,
                    "is_primary": existing == 0 and i == 0,
                },
            )
        )
    logger.info("listing_photos_uploaded", extra={"listing_id": listing_id, "count": len(created)})
    return created


def set_primary(store, landlord: Dict[str, Any], photo_id: str) -> Dict[str, Any]:
    photo = _owned_photo(store, landlord, photo_id)
    store.update("listing_photos", {"is_primary": False}, {"listing_id": photo["listing_id"]})
    return store.update("listing_photos", {"is_primary": True}, {"id": photo_id})[0]


def update_photo(
    store,
    landlord: Dict[str, Any],
    photo_id: str,
    *,
    photo_type: Optional[str] = None,
    caption: Optional[str] = None,
) -> Dict[str, Any]:
    photo = _owned_photo(store, landlord, photo_id)
    values: Dict[str, Any] = {}
    if photo_type is not None:
        if photo_type not in PHOTO_TYPES:
            raise ValidationError(f"Unknown photo type: {photo_type}")
        values["photo_type"] = photo_type
    if caption is not None:
        caption = caption.strip()
        if len(caption) > MAX_CAPTION:
            raise ValidationError(f"Caption must be at most {MAX_CAPTION} characters")
        values["caption"] = caption or None
    if not values:
        return photo
    return store.update("listing_photos", values, {"id": photo_id})[0]


def _renumber(store, ordered_ids: List[str]) -> None:
    for index, photo_id in enumerate(ordered_ids):
        store.update("listing_photos", {"display_order": index}, {"id": photo_id})


def delete_photos(store, landlord: Dict[str, Any], photo_ids: List[str]) -> List[Dict[str, Any]]:
    """Delete photos (storage first); returns the listing's remaining photos."""
    if not photo_ids:
        raise ValidationError("No photos selected")
    photos = [_owned_photo(store, landlord, pid) for pid in dict.fromkeys(photo_ids)]
    listing_ids = {p["listing_id"] for p in photos}
    if len(listing_ids) != 1:
        raise ValidationError("Photos must belong to the same listing")
    listing_id = listing_ids.pop()

    store.remove(PHOTO_BUCKET, [p["storage_path"] for p in photos if p.get("storage_path")])
    store.delete("listing_photos", {"id": [p["id"] for p in photos]})

    remaining = store.select("listing_photos", {"listing_id": listing_id}, order="display_order")
    if remaining and not any(p.get("is_primary") for p in remaining):
        store.update("listing_photos", {"is_primary": True}, {"id": remaining[0]["id"]})
        remaining[0]["is_primary"] = True
    _renumber(store, [p["id"] for p in remaining])
    for index, photo in enumerate(remaining):
        photo["display_order"] = index
    logger.info("listing_photos_deleted", extra={"listing_id": listing_id, "count": len(photos)})
    return remaining


def move_photo(store, landlord: Dict[str, Any], listing_id: str, photo_id: str, target_index: int) -> List[Dict[str, Any]]:
    """Drag ``photo_id`` to ``target_index`` (remove, then insert)."""
    photos = list_photos(store, landlord, listing_id)
    ids = [p["id"] for p in photos]
    if photo_id not in ids:
        raise NotFoundError("Photo not found")
    if not 0 <= target_index < len(ids):
        raise ValidationError("Target position out of range")
    ids.insert(target_index, ids.pop(ids.index(photo_id)))
    return _apply_order(store, photos, ids)


def reorder_photos(store, landlord: Dict[str, Any], listing_id: str, ordered_ids: List[str]) -> List[Dict[str, Any]]:
    photos = list_photos(store, landlord, listing_id)
    if sorted(ordered_ids) != sorted(p["id"] for p in photos):
        raise ValidationError("Order must list every photo of the listing exactly once")
    return _apply_order(store, photos, ordered_ids)


def _apply_order(store, photos: List[Dict[str, Any]], ordered_ids: List[str]) -> List[Dict[str, Any]]:
    by_id = {p["id"]: p for p in photos}
    _renumber(store, ordered_ids)
    result = []
    for index, photo_id in enumerate(ordered_ids):
        result.append({**by_id[photo_id], "display_order": index})
    return result
