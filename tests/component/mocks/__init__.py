"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (NATS, ETA service).
"""

from .nats_mock import MockEventBus
from .eta_mock import MockEtaEstimator

__all__ = [
    'MockEventBus',
    'MockEtaEstimator',
]
