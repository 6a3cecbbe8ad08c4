"""
Tracking Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that imports I/O-dependent modules.

Usage:
    from .factory import create_tracking_service
    service = create_tracking_service(config, event_bus)
"""
import logging
from typing import Optional

from core.config_manager import ConfigManager

from .memory_repository import InMemoryTrackingRepository
from .tracking_service import TrackingService

logger = logging.getLogger(__name__)


def create_repository(config: ConfigManager):
    """Repository selected by TRACKING_STORE (memory | postgres)"""
    service_config = config.get_service_config()

    if service_config.tracking_store == "postgres":
        # Import real repository here (not at module level)
        from .tracking_repository import TrackingRepository

        logger.info("Using PostgreSQL tracking store")
        return TrackingRepository(config=config)

    if service_config.tracking_store != "memory":
        logger.warning(f"Unknown TRACKING_STORE '{service_config.tracking_store}', using in-memory store")
    else:
        logger.info("Using in-memory tracking store")
    return InMemoryTrackingRepository()


def create_eta_estimator(config: ConfigManager):
    """ETA client from ETA_SERVICE_URL, or discovered through Consul; None when neither is set"""
    service_config = config.get_service_config()

    if not service_config.eta_service_url and not service_config.consul_enabled:
        logger.info("No ETA service configured, delivery estimates stay unknown")
        return None

    from .clients.eta_client import EtaClient

    return EtaClient(
        base_url=service_config.eta_service_url,
        timeout=service_config.eta_timeout_seconds,
    )


def create_tracking_service(
    config: Optional[ConfigManager] = None,
    event_bus=None,
    eta_estimator=None,
) -> TrackingService:
    """
    Create TrackingService with real dependencies.

    Args:
        config: Configuration manager
        event_bus: Event bus for publishing events
        eta_estimator: ETA estimator override (defaults to the HTTP client)

    Returns:
        Configured TrackingService instance
    """
    if config is None:
        config = ConfigManager("tracking_service")
    service_config = config.get_service_config()

    return TrackingService(
        repository=create_repository(config),
        event_bus=event_bus,
        eta_estimator=eta_estimator or create_eta_estimator(config),
        max_write_retries=service_config.max_write_retries,
        eta_timeout_seconds=service_config.eta_timeout_seconds,
    )
