"""Grid placement rules for the visual floor-plan builder.

Units sit on floors 1..10; each unit type occupies a fixed run of cells
starting at ``grid_x``. Two units collide when they share a floor and their
cell ranges overlap.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from management.common import get_or_404, owned_property
from management.errors import ConflictError, ValidationError
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

UNIT_CELLS = {"studio": 4, "1br": 5, "2br": 7, "stairs": 2}
UNIT_LABELS = {"studio": "Studio", "1br": "1 Bedroom", "2br": "2 Bedroom", "stairs": "Stairs"}
MIN_FLOOR = 1
MAX_FLOOR = 10
DEFAULT_RENT = {"studio": 1200, "1br": 1800}
FALLBACK_RENT = 2500


@dataclass(frozen=True)
class Placement:
    x: int
    y: int
    cells: int

    def overlaps(self, other: "Placement") -> bool:
        if self.y != other.y:
            return False
        return self.x < other.x + other.cells and self.x + self.cells > other.x


def unit_cells(unit_type: str) -> int:
    try:
        return UNIT_CELLS[unit_type]
    except KeyError:
        raise ValidationError(f"Unknown unit type: {unit_type}")


def clamp_position(x: int, y: int) -> tuple:
    return max(0, int(x)), min(MAX_FLOOR, max(MIN_FLOOR, int(y)))


def placement_for(unit_type: str, x: int, y: int) -> Placement:
    cx, cy = clamp_position(x, y)
    return Placement(cx, cy, unit_cells(unit_type))


def find_collision(
    candidate: Placement, units: Iterable[Dict[str, Any]], ignore_id: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    for unit in units:
        if ignore_id and unit.get("id") == ignore_id:
            continue
        if unit.get("grid_x") is None or unit.get("grid_y") is None:
            continue
        other = Placement(int(unit["grid_x"]), int(unit["grid_y"]), UNIT_CELLS.get(unit.get("unit_type"), 0))
        if candidate.overlaps(other):
            return unit
    return None


def generated_unit_number(x: int, y: int) -> str:
    return f"{y}{x // 2 + 10}"


def default_rent(unit_type: str) -> int:
    return DEFAULT_RENT.get(unit_type, FALLBACK_RENT)


def place_unit(store, landlord: Dict[str, Any], property_id: str, unit_type: str, x: int, y: int) -> Dict[str, Any]:
    """Drop a preset onto the grid, creating a new available unit."""
    owned_property(store, landlord, property_id)
    spot = placement_for(unit_type, x, y)
    siblings = store.select("units", {"property_id": property_id})
    if find_collision(spot, siblings):
        raise ConflictError("That space is already occupied")
    unit = store.insert(
        "units",
        {
            "property_id": property_id,
            "unit_type": unit_type,
            "grid_x": spot.x,
            "grid_y": spot.y,
            "unit_number": generated_unit_number(spot.x, spot.y),
            "rent_amount": default_rent(unit_type),
            "status": "available",
        },
    )
    logger.info("unit_placed", extra={"unit_id": unit["id"], "property_id": property_id, "unit_type": unit_type})
    return unit


def move_unit(store, landlord: Dict[str, Any], unit_id: str, x: int, y: int) -> Dict[str, Any]:
    unit = get_or_404(store, "units", unit_id, "Unit")
    owned_property(store, landlord, unit["property_id"])
    spot = placement_for(unit.get("unit_type") or "studio", x, y)
    siblings = store.select("units", {"property_id": unit["property_id"]})
    if find_collision(spot, siblings, ignore_id=unit_id):
        raise ConflictError("That space is already occupied")
    return store.update("units", {"grid_x": spot.x, "grid_y": spot.y}, {"id": unit_id})[0]


def remove_unit(store, landlord: Dict[str, Any], unit_id: str) -> None:
    unit = get_or_404(store, "units", unit_id, "Unit")
    owned_property(store, landlord, unit["property_id"])
    if store.select_one("leases", {"unit_id": unit_id, "status": ["pending", "pending_landlord", "active"]}):
        raise ConflictError("Unit has an open lease")
    store.delete("units", {"id": unit_id})
    logger.info("unit_removed", extra={"unit_id": unit_id, "property_id": unit["property_id"]})


def builder_layout(store, landlord: Dict[str, Any], property_id: str) -> Dict[str, Any]:
    prop = owned_property(store, landlord, property_id)
    units = store.select("units", {"property_id": property_id})
    return {
        "property": prop,
        "floors": MAX_FLOOR,
        "palette": [{"type": t, "cells": c, "label": UNIT_LABELS[t]} for t, c in UNIT_CELLS.items()],
        "units": sorted(units, key=lambda u: (u.get("grid_y") or 0, u.get("grid_x") or 0)),
    }
