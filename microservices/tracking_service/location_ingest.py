"""
Location Ingest & Fan-out

Accepts GPS pings from delivery partners, stores the newest position on
the partner record and pushes it to the viewers of the order the partner
is delivering. Pings never create tracking updates.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from pydantic import ValidationError

from .models import Location, LocationPing, as_utc, utc_now
from .protocols import (
    Conflict,
    InvalidLocation,
    PartnerNotFound,
    StaleWrite,
    TrackingRepositoryProtocol,
)
from .subscription_registry import SubscriptionRegistry

logger = logging.getLogger(__name__)

# Device clocks may run slightly ahead of ours
MAX_CLOCK_SKEW = timedelta(seconds=30)


def validate_ping(ping: LocationPing, received_at: Optional[datetime] = None) -> Location:
    """Turn a raw ping into a Location; raises InvalidLocation"""
    lat, lng = ping.latitude, ping.longitude
    if not (math.isfinite(lat) and -90 <= lat <= 90):
        raise InvalidLocation(f"latitude {lat} out of range [-90, 90]")
    if not (math.isfinite(lng) and -180 <= lng <= 180):
        raise InvalidLocation(f"longitude {lng} out of range [-180, 180]")

    received = as_utc(received_at) if received_at else utc_now()
    timestamp = as_utc(ping.timestamp) if ping.timestamp else received
    if timestamp > received + MAX_CLOCK_SKEW:
        raise InvalidLocation(
            f"timestamp {timestamp.isoformat()} is ahead of server time {received.isoformat()}"
        )

    try:
        return Location(
            latitude=lat,
            longitude=lng,
            timestamp=timestamp,
            accuracy=ping.accuracy,
            heading=ping.heading,
            speed=ping.speed,
        )
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors())
        raise InvalidLocation(f"invalid {fields}") from e


class LocationIngest:
    """Ping validation, CAS write of the partner position and viewer fan-out"""

    def __init__(
        self,
        repository: TrackingRepositoryProtocol,
        registry: SubscriptionRegistry,
        max_write_retries: int = 3,
    ):
        self.repository = repository
        self.registry = registry
        self.max_write_retries = max(1, max_write_retries)

    async def report_location(
        self,
        partner_id: str,
        ping: LocationPing,
        received_at: Optional[datetime] = None,
    ) -> Location:
        """
        Store a ping as the partner's current location.

        Raises:
            InvalidLocation: coordinates out of range, timestamp older
                than the last accepted ping (equal timestamps are accepted)
                or more than MAX_CLOCK_SKEW ahead of the receive time
            PartnerNotFound: unknown partner
            Conflict: lost the version race max_write_retries times
        """
        try:
            location = validate_ping(ping, received_at)
        except InvalidLocation as e:
            logger.warning(f"Rejected ping from partner {partner_id}: {e}")
            raise

        for attempt in range(1, self.max_write_retries + 1):
            partner = await self.repository.get_partner(partner_id)
            if partner is None:
                raise PartnerNotFound(f"Partner not found: {partner_id}")

            last = partner.current_location
            if last is not None and location.timestamp < last.timestamp:
                logger.warning(
                    f"Rejected stale ping from partner {partner_id}: "
                    f"{location.timestamp.isoformat()} < {last.timestamp.isoformat()}"
                )
                raise InvalidLocation(
                    f"timestamp {location.timestamp.isoformat()} is older than last accepted "
                    f"{last.timestamp.isoformat()}"
                )

            partner.current_location = location
            partner.updated_at = utc_now()
            try:
                partner = await self.repository.update_partner(partner, partner.version)
                break
            except StaleWrite:
                logger.info(f"Stale write on partner {partner_id} location (attempt {attempt})")
        else:
            raise Conflict(
                f"Location of partner {partner_id} not stored after {self.max_write_retries} attempts"
            )

        if partner.is_online and partner.current_order_id:
            self.registry.publish_location(partner.current_order_id, partner_id, location)

        return location
