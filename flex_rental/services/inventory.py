from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger

from pawa_shared.db.models import Station
from pawa_shared.db.repositories.station import StationRepository

from flex_rental.monitoring.metrics import MetricsCollector


class InventoryOutcome(str, Enum):
    OK = "ok"
    INSUFFICIENT_INVENTORY = "insufficient_inventory"
    STATION_NOT_FOUND = "station_not_found"


@dataclass
class InventoryResult:
    station_id: str
    outcome: InventoryOutcome
    clamped: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome == InventoryOutcome.OK


class InventoryLedger:
    """
    Slot accounting per station. Every change is a single conditional
    UPDATE, so concurrent requests never drive a count below zero.
    """

    def __init__(self, station_repo: StationRepository):
        self.station_repo = station_repo

    def get_station(self, station_id: str) -> Optional[Station]:
        return self.station_repo.get_by_id(station_id)

    def reserve_slot(self, station_id: str) -> InventoryResult:
        if self.station_repo.reserve_slot(station_id):
            MetricsCollector.record_inventory("reserve", "ok")
            return InventoryResult(station_id, InventoryOutcome.OK)

        if not self.station_repo.exists(station_id):
            logger.warning(f"Reserve failed: station {station_id} not found")
            MetricsCollector.record_inventory("reserve", "not_found")
            return InventoryResult(station_id, InventoryOutcome.STATION_NOT_FOUND)

        logger.info(f"Reserve failed: no power banks left at station {station_id}")
        MetricsCollector.record_inventory("reserve", "insufficient")
        return InventoryResult(station_id, InventoryOutcome.INSUFFICIENT_INVENTORY)

    def release_slot(self, station_id: str) -> InventoryResult:
        if self.station_repo.release_slot(station_id):
            MetricsCollector.record_inventory("release", "ok")
            return InventoryResult(station_id, InventoryOutcome.OK)

        if not self.station_repo.exists(station_id):
            logger.warning(f"Release failed: station {station_id} not found")
            MetricsCollector.record_inventory("release", "not_found")
            return InventoryResult(station_id, InventoryOutcome.STATION_NOT_FOUND)

        # count already at capacity: keep it there and flag for inventory review
        logger.warning(
            f"Release at station {station_id} would exceed total capacity; count clamped"
        )
        MetricsCollector.record_inventory("release", "clamped")
        return InventoryResult(station_id, InventoryOutcome.OK, clamped=True)
