"""
ETA Service Client for Tracking Service

Boundary to the external routing/ETA estimator. The estimate is opaque to
the tracking service: any failure, timeout or malformed answer surfaces as
EstimateUnavailable.
"""

import httpx
import logging
from datetime import timedelta
from typing import Optional

from ..models import Location, OrderStatus
from ..protocols import EstimateUnavailable

logger = logging.getLogger(__name__)


class EtaClient:
    """Client for eta_service"""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 2.0):
        if base_url:
            self.base_url = base_url.rstrip('/')
        else:
            try:
                from core.service_discovery import get_service_discovery
                sd = get_service_discovery()
                self.base_url = sd.get_eta_service_url()
            except Exception as e:
                logger.warning(f"Service discovery failed, using default: {e}")
                self.base_url = "http://localhost:8261"

        self.client = httpx.AsyncClient(timeout=timeout)
        logger.info(f"EtaClient initialized with base_url: {self.base_url}")

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def estimate(
        self,
        pickup_location: Location,
        delivery_location: Location,
        current_location: Optional[Location],
        status: OrderStatus,
    ) -> timedelta:
        """Remaining time until delivery"""
        payload = {
            "pickup_location": pickup_location.model_dump(mode="json"),
            "delivery_location": delivery_location.model_dump(mode="json"),
            "current_location": current_location.model_dump(mode="json") if current_location else None,
            "status": OrderStatus(status).value,
        }
        try:
            response = await self.client.post(f"{self.base_url}/api/v1/eta/estimate", json=payload)
            response.raise_for_status()
            seconds = float(response.json()["eta_seconds"])
        except httpx.HTTPStatusError as e:
            logger.error(f"Failed to get ETA: {e.response.status_code}")
            raise EstimateUnavailable(f"ETA service returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Error calling ETA service: {e}")
            raise EstimateUnavailable(f"ETA service unreachable: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed ETA response: {e}")
            raise EstimateUnavailable("ETA service returned a malformed response") from e

        if seconds < 0:
            raise EstimateUnavailable(f"ETA service returned a negative estimate: {seconds}")
        return timedelta(seconds=seconds)
