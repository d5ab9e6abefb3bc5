"""
Test framework for router testing using 4-layer architecture.
"""

from .dsl import RouterDsl, HttpRequest, HttpResponse
from .drivers import DirectDriver, WsgiTestDriver, DriverInterface
from .multi_driver_base import MultiDriverTestBase, only_drivers

__all__ = [
    'RouterDsl',
    'HttpRequest',
    'HttpResponse',
    'DirectDriver',
    'WsgiTestDriver',
    'DriverInterface',
    'MultiDriverTestBase',
    'only_drivers',
]
