from __future__ import annotations

import math
import random
from typing import Any, List, Mapping, Optional, Protocol, Sequence, Tuple

import structlog

from ..topology.models import TopologySnapshot
from .models import PlacementResult

logger = structlog.get_logger("suggestions.placement")

Point = Tuple[float, float]

PROXIMITY_RADIUS = 150.0
PROXIMITY_JITTER = 50.0
SIMILAR_TYPE_RADIUS = 100.0
SIMILAR_TYPE_JITTER = 50.0
BUILDING_SPREAD = 0.6
TIER_JITTER = 150.0
GRID_SNAP = 20.0
MIN_SPACING = 80.0
MAX_OVERLAP_ATTEMPTS = 50
GOLDEN_FRACTION = 0.618

# Base canvas coordinates per device type: edge at the top, access lower down.
TIER_POSITIONS = {
    "firewall": (400.0, 100.0),
    "router": (400.0, 100.0),
    "wan": (300.0, 100.0),
    "core": (400.0, 200.0),
    "switch": (350.0, 350.0),
    "ap": (300.0, 500.0),
    "server": (500.0, 300.0),
}
DEFAULT_TIER_POSITION = (400.0, 300.0)


class RandomSource(Protocol):
    def random(self) -> float: ...


def snap(value: float, grid: float = GRID_SNAP) -> float:
    """Round to the nearest grid multiple; halves round up."""
    return math.floor(value / grid + 0.5) * grid


def avoid_overlaps(
    candidate: Point,
    occupied: Sequence[Point],
    *,
    grid: float = GRID_SNAP,
    min_spacing: float = MIN_SPACING,
    max_attempts: int = MAX_OVERLAP_ATTEMPTS,
) -> Point:
    """
    Walk a golden-angle spiral out from `candidate` until a grid point keeps
    `min_spacing` from every occupied position.

    Returns the original candidate if no free point is found.
    """
    x, y = candidate
    for attempt in range(max_attempts):
        angle = attempt * GOLDEN_FRACTION * 2 * math.pi
        distance = math.sqrt(attempt) * grid
        test_x = snap(x + math.cos(angle) * distance, grid)
        test_y = snap(y + math.sin(angle) * distance, grid)
        if all(math.hypot(test_x - ox, test_y - oy) >= min_spacing for ox, oy in occupied):
            return test_x, test_y
    logger.debug("placement_spiral_exhausted", x=x, y=y, attempts=max_attempts)
    return x, y


class PlacementEngine:
    """
    Picks a canvas position for a new device.

    Strategies, in priority order:
      1. near_connected     - around the centroid of the devices it connects to
      2. near_similar_type  - around the centroid of devices of the same type
      3. building_location  - inside the assigned building's bounds
      4. topology_tier      - at the base coordinate for the device type

    The result is always grid-snapped and spaced away from existing devices
    plus any `occupied` positions (earlier placements in the same turn).
    """

    def __init__(
        self,
        rng: Optional[RandomSource] = None,
        *,
        grid: float = GRID_SNAP,
        min_spacing: float = MIN_SPACING,
        max_attempts: int = MAX_OVERLAP_ATTEMPTS,
    ):
        self._rng = rng or random.Random()
        self.grid = grid
        self.min_spacing = min_spacing
        self.max_attempts = max_attempts

    def place(
        self,
        device: Mapping[str, Any],
        connection_targets: Sequence[str],
        snapshot: TopologySnapshot,
        occupied: Sequence[Point] = (),
    ) -> PlacementResult:
        device_type = str(device.get("type") or "")
        x, y, strategy = self._candidate(device, device_type, connection_targets, snapshot)

        obstacles: List[Point] = [d.position for d in snapshot.devices.values()]
        obstacles.extend(occupied)
        final_x, final_y = avoid_overlaps(
            (snap(x, self.grid), snap(y, self.grid)),
            obstacles,
            grid=self.grid,
            min_spacing=self.min_spacing,
            max_attempts=self.max_attempts,
        )

        logger.debug(
            "device_placed",
            name=device.get("name"),
            strategy=strategy,
            x=final_x,
            y=final_y,
        )
        return PlacementResult(x=final_x, y=final_y, strategy=strategy)

    # ------------------------------------------------------------------ #
    # Strategies
    # ------------------------------------------------------------------ #

    def _candidate(
        self,
        device: Mapping[str, Any],
        device_type: str,
        connection_targets: Sequence[str],
        snapshot: TopologySnapshot,
    ) -> Tuple[float, float, str]:
        connected = self._near_connected(connection_targets, snapshot)
        if connected is not None:
            return connected[0], connected[1], "near_connected"

        similar = self._near_similar_type(device_type, snapshot)
        if similar is not None:
            return similar[0], similar[1], "near_similar_type"

        building = self._in_building(device.get("buildingId"), snapshot)
        if building is not None:
            return building[0], building[1], "building_location"

        tier = self._by_tier(device_type)
        return tier[0], tier[1], "topology_tier"

    def _near_connected(
        self,
        connection_targets: Sequence[str],
        snapshot: TopologySnapshot,
    ) -> Optional[Point]:
        positions = []
        for name in connection_targets:
            target = snapshot.device_by_name(name)
            if target is not None:
                positions.append(target.position)
        if not positions:
            return None

        avg_x = sum(p[0] for p in positions) / len(positions)
        avg_y = sum(p[1] for p in positions) / len(positions)
        angle = self._rng.random() * 2 * math.pi
        distance = PROXIMITY_RADIUS + self._rng.random() * PROXIMITY_JITTER
        return avg_x + math.cos(angle) * distance, avg_y + math.sin(angle) * distance

    def _near_similar_type(self, device_type: str, snapshot: TopologySnapshot) -> Optional[Point]:
        if not device_type:
            return None
        positions = [d.position for d in snapshot.devices.values() if d.type == device_type]
        if not positions:
            return None

        avg_x = sum(p[0] for p in positions) / len(positions)
        avg_y = sum(p[1] for p in positions) / len(positions)
        angle = self._rng.random() * 2 * math.pi
        distance = SIMILAR_TYPE_RADIUS + self._rng.random() * SIMILAR_TYPE_JITTER
        return avg_x + math.cos(angle) * distance, avg_y + math.sin(angle) * distance

    def _in_building(self, building_id: Any, snapshot: TopologySnapshot) -> Optional[Point]:
        if not building_id:
            return None
        building = snapshot.buildings.get(str(building_id))
        if building is None or not building.has_bounds:
            return None

        center_x = building.x + building.width / 2
        center_y = building.y + building.height / 2
        return (
            center_x + (self._rng.random() - 0.5) * building.width * BUILDING_SPREAD,
            center_y + (self._rng.random() - 0.5) * building.height * BUILDING_SPREAD,
        )

    def _by_tier(self, device_type: str) -> Point:
        base_x, base_y = TIER_POSITIONS.get(device_type, DEFAULT_TIER_POSITION)
        return (
            base_x + (self._rng.random() - 0.5) * TIER_JITTER,
            base_y + (self._rng.random() - 0.5) * TIER_JITTER,
        )
