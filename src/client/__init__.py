"""
Client-side capture-and-submit coordination for embedded HubSpot forms.
"""

from .capabilities import (
    EmbeddedFormAccessor,
    DocumentQuery,
    CaptureSurface,
    CaptureSurfaceFactory,
    FormLibrary,
    HostPage,
    LoggingHostPage,
)
from .carrier import Carrier, MemoryCarrier, FileCarrier
from .capture import PillowCaptureSurface, PillowCaptureSurfaceFactory
from .coordinator import SignatureCoordinator, CoordinatorConfig, CoordinatorState
from .scheduler import Scheduler, ThreadingScheduler
from .transport import OrchestratorClient, TransportError, RequestRejectedError

__all__ = [
    'EmbeddedFormAccessor',
    'DocumentQuery',
    'CaptureSurface',
    'CaptureSurfaceFactory',
    'FormLibrary',
    'HostPage',
    'LoggingHostPage',
    'Carrier',
    'MemoryCarrier',
    'FileCarrier',
    'PillowCaptureSurface',
    'PillowCaptureSurfaceFactory',
    'SignatureCoordinator',
    'CoordinatorConfig',
    'CoordinatorState',
    'Scheduler',
    'ThreadingScheduler',
    'OrchestratorClient',
    'TransportError',
    'RequestRejectedError'
]
