#!/usr/bin/env python3
"""
Core Module for Microservices Architecture

Shared infrastructure for the delivery tracking platform services.

COMPONENTS:
    - config/: infrastructure and logging sub-configs (python-dotenv)
    - config_manager.py: centralized configuration management
    - logger.py: service logger setup
    - nats_client.py: NATS JetStream event bus
    - consul_registry.py: Consul service discovery
    - postgres_client.py: asyncpg pool wrapper
    - auth_dependencies.py: gateway identity headers as FastAPI dependencies

USAGE:
    from core.config_manager import ConfigManager

    config = ConfigManager("tracking_service")

NOTE: Service registration handled by Consul agent sidecar, not programmatic registration
"""

from .config_manager import ConfigManager, Environment, ServiceConfig

__all__ = [
    "ConfigManager",
    "Environment",
    "ServiceConfig",
]

__version__ = "2.0.0"
