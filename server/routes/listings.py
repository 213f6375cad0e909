from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel

from management import listings, photos
from server.deps import get_geocoder, get_store, require_landlord, to_blobs

router = APIRouter(tags=["listings"])


class ListingCreate(BaseModel):
    property_id: str = ""
    title: str = ""
    property_type: str = ""
    city: str = ""


class ListingUpdate(BaseModel):
    changes: Dict[str, Any] = {}
    publish: bool = False
    amenity_ids: Optional[List[str]] = None


class PhotoUpdate(BaseModel):
    photo_type: Optional[str] = None
    caption: Optional[str] = None


class PhotoIds(BaseModel):
    photo_ids: List[str]


class PhotoMove(BaseModel):
    target_index: int


# Landlord side ---


@router.get("/api/listings")
def my_listings(
    search: Optional[str] = None,
    status: Optional[str] = None,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return listings.list_my_listings(store, landlord, search=search, status=status)


@router.post("/api/listings")
def create_listing(
    payload: ListingCreate, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)
):
    return {"listing": listings.create_listing(store, landlord, payload.model_dump())}


@router.get("/api/listings/{listing_id}/edit")
def edit_listing(listing_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return listings.get_listing_for_edit(store, landlord, listing_id)


@router.patch("/api/listings/{listing_id}")
def update_listing(
    listing_id: str,
    payload: ListingUpdate,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    listing = listings.update_listing(
        store, landlord, listing_id, payload.changes, publish=payload.publish, amenity_ids=payload.amenity_ids
    )
    return {"listing": listing}


@router.post("/api/listings/{listing_id}/toggle")
def toggle_listing(listing_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return {"listing": listings.toggle_publish(store, landlord, listing_id)}


@router.delete("/api/listings/{listing_id}")
def delete_listing(listing_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    listings.delete_listing(store, landlord, listing_id)
    return {"ok": True}


@router.post("/api/listings/{listing_id}/geocode")
def geocode_listing(
    listing_id: str,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
    geocoder=Depends(get_geocoder),
):
    return {"location": listings.geocode_listing(store, landlord, listing_id, geocoder)}


@router.get("/api/listings/{listing_id}/photos")
def list_photos(listing_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return {"photos": photos.list_photos(store, landlord, listing_id)}


@router.post("/api/listings/{listing_id}/photos")
def upload_photos(
    listing_id: str,
    files: List[UploadFile] = File(...),
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    blobs = to_blobs(files)
    return {"photos": photos.upload_photos(store, landlord, listing_id, blobs)}


@router.post("/api/photos/delete")
def delete_photos(
    payload: PhotoIds,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return {"photos": photos.delete_photos(store, landlord, payload.photo_ids)}


@router.post("/api/listings/{listing_id}/photos/order")
def reorder_photos(
    listing_id: str,
    payload: PhotoIds,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return {"photos": photos.reorder_photos(store, landlord, listing_id, payload.photo_ids)}


@router.post("/api/listings/{listing_id}/photos/{photo_id}/move")
def move_photo(
    listing_id: str,
    photo_id: str,
    payload: PhotoMove,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    return {"photos": photos.move_photo(store, landlord, listing_id, photo_id, payload.target_index)}


@router.post("/api/photos/{photo_id}/primary")
def set_primary(photo_id: str, landlord: Dict[str, Any] = Depends(require_landlord), store=Depends(get_store)):
    return {"photo": photos.set_primary(store, landlord, photo_id)}


@router.patch("/api/photos/{photo_id}")
def update_photo(
    photo_id: str,
    payload: PhotoUpdate,
    landlord: Dict[str, Any] = Depends(require_landlord),
    store=Depends(get_store),
):
    photo = photos.update_photo(store, landlord, photo_id, photo_type=payload.photo_type, caption=payload.caption)
    return {"photo": photo}


# Public side ---


@router.get("/api/amenities")
def amenities(store=Depends(get_store)):
    return {"amenities": listings.list_amenities(store)}


@router.get("/api/browse")
def browse(
    city: Optional[str] = None,
    q: Optional[str] = None,
    max_price: Optional[float] = None,
    store=Depends(get_store),
):
    return {"listings": listings.browse_listings(store, city=city, query=q, max_price=max_price)}


@router.get("/api/browse/{listing_id}")
def listing_detail(listing_id: str, store=Depends(get_store)):
    return listings.public_listing(store, listing_id)
