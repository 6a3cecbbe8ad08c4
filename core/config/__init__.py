#!/usr/bin/env python3
"""Modular configuration system for the delivery tracking platform

Configuration hierarchy:
- infra_config: Infrastructure endpoints (PostgreSQL, NATS, Consul)
- logging_config: Logging configuration

Service-level settings are assembled by core.config_manager.ConfigManager.
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig

ENV_FILES = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}


def current_environment() -> str:
    """Name of the active environment"""
    return os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")


def load_environment() -> str:
    """Load the env file for the active environment, never overriding real env vars"""
    env_file = ENV_FILES.get(current_environment(), ENV_FILES["development"])
    load_dotenv(env_file, override=False)
    return env_file


__all__ = [
    'LoggingConfig',
    'InfraConfig',
    'ENV_FILES',
    'current_environment',
    'load_environment',
]
