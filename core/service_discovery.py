"""
Service Discovery Helper Module

Provides helper functions for discovering services via Consul
"""

import logging
import os
from typing import Optional

from .consul_registry import ConsulRegistry

logger = logging.getLogger(__name__)


class ServiceDiscovery:
    """Helper class for service discovery via Consul"""

    def __init__(self, consul_registry: Optional[ConsulRegistry] = None):
        self.consul_registry = consul_registry

    def get_service_url(self, service_name: str) -> str:
        """
        Get service URL from Consul discovery

        Raises:
            ValueError: If service not found in Consul
        """
        if not self.consul_registry:
            raise ValueError("No Consul registry available for service discovery")

        endpoint = self.consul_registry.get_service_endpoint(service_name)
        if endpoint:
            logger.debug(f"Discovered {service_name} at {endpoint}")
            return endpoint

        raise ValueError(f"Service {service_name} not found in Consul")

    def get_eta_service_url(self) -> str:
        """Get ETA estimator URL"""
        return self.get_service_url("eta_service")


def get_service_discovery() -> ServiceDiscovery:
    """
    Get service discovery helper

    Registration is handled by Consul agent sidecar, only discovery is needed here.
    """
    consul_host = os.getenv('CONSUL_HOST', 'localhost')
    consul_port = int(os.getenv('CONSUL_PORT', 8500))

    consul_registry = ConsulRegistry(
        consul_host=consul_host,
        consul_port=consul_port
    )
    return ServiceDiscovery(consul_registry)
