"""Safe places where simulated vehicles can appear."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SpawnLocation:
    """A named point where a vehicle may start."""

    name: str
    lat: float
    lng: float


_PORTLAND_SPAWN_LOCATIONS = (
    # Downtown parking areas
    SpawnLocation("Pioneer Courthouse Square", 45.5188, -122.6793),
    SpawnLocation("Union Station Parking", 45.5289, -122.6765),
    SpawnLocation("Portland Building Lot", 45.5145, -122.6794),
    # Shopping center parking lots
    SpawnLocation("Lloyd Center Parking", 45.5311, -122.6536),
    SpawnLocation("Pioneer Place Garage", 45.5188, -122.6746),
    # Hospital and university areas
    SpawnLocation("OHSU Campus Parking", 45.4993, -122.6859),
    SpawnLocation("Portland State Parking", 45.5118, -122.6839),
    # Neighborhood commercial areas
    SpawnLocation("Hawthorne District", 45.5122, -122.6208),
    SpawnLocation("Alberta Arts District", 45.5581, -122.6656),
    SpawnLocation("Mississippi District", 45.5459, -122.6759),
    SpawnLocation("Pearl District", 45.5266, -122.6908),
    SpawnLocation("NW 23rd Avenue", 45.5298, -122.6979),
    # Transit hubs
    SpawnLocation("PDX Airport Pickup", 45.5898, -122.5951),
    SpawnLocation("Eastbank Esplanade", 45.5152, -122.6647),
    # Park and ride locations
    SpawnLocation("Washington Park", 45.5099, -122.7161),
    SpawnLocation("Laurelhurst Park", 45.5162, -122.6295),
    SpawnLocation("Mount Tabor Park", 45.5118, -122.5933),
)


def portland_spawn_locations() -> list[SpawnLocation]:
    """Return the safe spawn points in Portland."""
    return list(_PORTLAND_SPAWN_LOCATIONS)


def random_spawn_location(rng: Optional[random.Random] = None) -> SpawnLocation:
    """Return one spawn point chosen uniformly at random."""
    chooser = rng if rng is not None else random
    return chooser.choice(_PORTLAND_SPAWN_LOCATIONS)