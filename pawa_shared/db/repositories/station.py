from datetime import datetime, timezone
from typing import Optional

from loguru import logger
from sqlalchemy import case, update
from sqlalchemy.orm import Session

from pawa_shared.db.models import Station


class StationRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, station_id: str) -> Optional[Station]:
        return self.session.get(Station, station_id, populate_existing=True)

    def exists(self, station_id: str) -> bool:
        return self.session.get(Station, station_id) is not None

    # --- Atomic slot accounting ---

    def reserve_slot(self, station_id: str) -> bool:
        """
        Takes one power bank out of the station in a single conditional
        UPDATE. Returns False when nothing was available (or no such station).
        """
        result = self.session.execute(
            update(Station)
            .where(Station.id == station_id, Station.pb_available > 0)
            .values(
                pb_available=Station.pb_available - 1,
                return_slots=Station.return_slots + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        reserved = result.rowcount > 0
        logger.debug("reserve_slot: station={} reserved={}", station_id, reserved)
        return reserved

    def release_slot(self, station_id: str) -> bool:
        """
        Puts one power bank back. Never pushes pb_available above
        total_capacity; returns False when the increment did not happen.
        """
        result = self.session.execute(
            update(Station)
            .where(
                Station.id == station_id,
                Station.pb_available < Station.total_capacity,
            )
            .values(
                pb_available=Station.pb_available + 1,
                return_slots=case(
                    (Station.return_slots > 0, Station.return_slots - 1),
                    else_=0,
                ),
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        released = result.rowcount > 0
        logger.debug("release_slot: station={} released={}", station_id, released)
        return released
