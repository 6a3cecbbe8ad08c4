"""
Tracking Service Clients Module

HTTP clients for synchronous communication with other services
"""

from .eta_client import EtaClient

__all__ = [
    "EtaClient",
]
