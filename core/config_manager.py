"""
Centralized Configuration Manager

Every microservice builds its settings through ConfigManager:

    config_manager = ConfigManager("tracking_service")
    config = config_manager.get_service_config()

Resolution order for every value: process environment -> env file for the
active environment (python-dotenv) -> built-in default.
"""

import logging
import os
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .config import InfraConfig, LoggingConfig, current_environment, load_environment

logger = logging.getLogger(__name__)


def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


# Default ports per service
SERVICE_PORTS = {
    "tracking_service": 8260,
    "eta_service": 8261,
}

SECRET_KEYS = ("postgres_password",)


@dataclass
class ServiceConfig:
    """Resolved configuration for one service"""
    service_name: str
    service_host: str = "0.0.0.0"
    service_port: int = 8260
    environment: str = Environment.DEVELOPMENT.value
    debug: bool = False
    log_level: str = "INFO"

    # Discovery / messaging
    consul_enabled: bool = False
    consul_host: str = "localhost"
    consul_port: int = 8500
    nats_enabled: bool = True
    nats_url: str = "nats://localhost:4222"

    # Storage
    tracking_store: str = "memory"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "postgres"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_pool_min: int = 1
    postgres_pool_max: int = 10

    # Collaborators
    eta_service_url: Optional[str] = None
    eta_timeout_seconds: float = 2.0

    # Optimistic concurrency
    max_write_retries: int = 3

    extra: Dict[str, Any] = field(default_factory=dict)


class ConfigManager:
    """Builds and caches the ServiceConfig of a named service"""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.env_file = load_environment()
        self.environment = current_environment()
        self.logging = LoggingConfig.from_env()
        self.infra = InfraConfig.from_env()
        self._service_config: Optional[ServiceConfig] = None

    def get_service_config(self) -> ServiceConfig:
        if self._service_config is None:
            self._service_config = self._build_service_config()
        return self._service_config

    def _build_service_config(self) -> ServiceConfig:
        default_port = SERVICE_PORTS.get(self.service_name, 8260)
        infra = self.infra
        return ServiceConfig(
            service_name=self.service_name,
            service_host=os.getenv("SERVICE_HOST", "0.0.0.0"),
            service_port=_int(os.getenv("SERVICE_PORT", ""), default_port),
            environment=self.environment,
            debug=_bool(os.getenv("DEBUG", "false")),
            log_level=self.logging.log_level,
            consul_enabled=infra.consul_enabled,
            consul_host=infra.consul_host,
            consul_port=infra.consul_port,
            nats_enabled=infra.nats_enabled,
            nats_url=infra.resolved_nats_url,
            tracking_store=os.getenv("TRACKING_STORE", "memory").lower(),
            postgres_host=infra.postgres_host,
            postgres_port=infra.postgres_port,
            postgres_db=infra.postgres_db,
            postgres_user=infra.postgres_user,
            postgres_password=infra.postgres_password,
            postgres_pool_min=infra.postgres_pool_min,
            postgres_pool_max=infra.postgres_pool_max,
            eta_service_url=os.getenv("ETA_SERVICE_URL") or None,
            eta_timeout_seconds=_float(os.getenv("ETA_TIMEOUT_SECONDS", ""), 2.0),
            max_write_retries=max(1, _int(os.getenv("MAX_WRITE_RETRIES", ""), 3)),
        )

    def discover_service(
        self,
        service_name: str,
        default_host: str,
        default_port: int,
        env_host_key: Optional[str] = None,
        env_port_key: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Resolve host/port of a dependency.

        Priority: environment variables -> Consul -> defaults.
        """
        env_host = os.getenv(env_host_key) if env_host_key else None
        env_port = os.getenv(env_port_key) if env_port_key else None
        if env_host:
            return env_host, _int(env_port or "", default_port)

        if self.infra.consul_enabled:
            try:
                from .consul_registry import ConsulRegistry

                registry = ConsulRegistry(
                    consul_host=self.infra.consul_host,
                    consul_port=self.infra.consul_port,
                )
                instances = registry.discover_service(service_name)
                if instances:
                    return instances[0]["address"], int(instances[0]["port"])
            except Exception as e:
                logger.warning(f"Consul discovery failed for {service_name}: {e}")

        return default_host, default_port

    def print_config_summary(self, show_secrets: bool = False):
        """Print resolved configuration (development aid)"""
        config = self.get_service_config()
        print(f"=== {self.service_name} configuration ({self.environment}) ===")
        print(f"env file: {self.env_file}")
        for key, value in asdict(config).items():
            if key in SECRET_KEYS and not show_secrets:
                value = "***"
            print(f"  {key}: {value}")
