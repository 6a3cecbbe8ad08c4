"""
Consul Service Discovery Module

Service discovery for the tracking platform. Registration itself is handled
by the Consul agent sidecar, so the registration methods below are no-ops
kept for the service lifespan hooks.
"""

import consul
import logging
import os
import random
import socket
from typing import Optional, List, Dict, Any

logger = logging.getLogger(__name__)


class ConsulRegistry:
    """
    Consul Service Discovery Client

    NOTE: Service registration is handled by Consul agent sidecar.
    This class ONLY provides service discovery functionality.
    """

    def __init__(
        self,
        service_name: str = None,
        service_port: int = None,
        consul_host: str = "localhost",
        consul_port: int = 8500,
        service_host: Optional[str] = None,
        tags: Optional[List[str]] = None,
        meta: Optional[Dict[str, str]] = None,
    ):
        self.consul = consul.Consul(host=consul_host, port=consul_port)
        self.service_name = service_name
        self.service_port = service_port
        self.tags = tags or []
        self.meta = meta or {}

        if service_host and service_host != "0.0.0.0":
            self.service_host = service_host
        else:
            self.service_host = os.getenv('HOSTNAME', socket.gethostname())

        if service_name and service_port:
            self.service_id = f"{service_name}-{self.service_host}-{service_port}"
        else:
            self.service_id = "discovery-client"

        logger.info(f"Consul service discovery initialized: {consul_host}:{consul_port}")

    # ========================================
    # Registration Methods (No-op - handled by Consul agent sidecar)
    # ========================================

    def register(self) -> bool:
        """No-op: Registration handled by Consul agent sidecar"""
        logger.debug(f"Registration of {self.service_id} handled by Consul agent sidecar ({len(self.meta)} meta keys)")
        return True

    def deregister(self) -> bool:
        """No-op: Registration handled by Consul agent sidecar"""
        logger.debug("Registration handled by Consul agent sidecar, skipping deregistration")
        return True

    def start_maintenance(self):
        """No-op: Registration handled by Consul agent sidecar"""
        logger.debug("Registration handled by Consul agent sidecar, skipping maintenance start")

    def stop_maintenance(self):
        """No-op: Registration handled by Consul agent sidecar"""
        logger.debug("Registration handled by Consul agent sidecar, skipping maintenance stop")

    # Service Discovery Methods
    def discover_service(self, service_name: str) -> List[Dict[str, Any]]:
        """Discover healthy instances of a service"""
        try:
            index, services = self.consul.health.service(service_name, passing=True)

            instances = []
            for service in services:
                instances.append({
                    'id': service['Service']['ID'],
                    'address': service['Service']['Address'],
                    'port': service['Service']['Port'],
                    'tags': service['Service'].get('Tags', []),
                    'meta': service['Service'].get('Meta', {})
                })

            return instances
        except Exception as e:
            logger.error(f"Failed to discover service {service_name}: {e}")
            return []

    def get_service_endpoint(self, service_name: str) -> Optional[str]:
        """Get one healthy endpoint, preferring instances tagged 'preferred'"""
        instances = self.discover_service(service_name)
        if not instances:
            return None

        preferred = [inst for inst in instances if 'preferred' in inst.get('tags', [])]
        instance = random.choice(preferred or instances)
        return f"http://{instance['address']}:{instance['port']}"

    def get_service_address(self, service_name: str, fallback_url: Optional[str] = None) -> str:
        """
        Get service address from Consul with fallback

        Example:
            url = registry.get_service_address("eta_service", "http://localhost:8261")
        """
        endpoint = self.get_service_endpoint(service_name)
        if endpoint:
            logger.debug(f"Discovered {service_name} at {endpoint}")
            return endpoint

        if fallback_url:
            logger.warning(f"Service {service_name} not found in Consul, using fallback: {fallback_url}")
            return fallback_url

        raise ValueError(f"Service {service_name} not found in Consul and no fallback provided")
