"""Environment probes used to tune auto-save timing.

The debounce layer asks about network reachability, connection
quality, and device capability. ``QtEnvironment`` answers from Qt and
the OS; ``StaticEnvironment`` returns fixed values for tests and
headless tools. Every probe is best-effort and never raises.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from PySide6.QtCore import QThread
from PySide6.QtNetwork import QNetworkInformation

logger = logging.getLogger(__name__)

_BYTES_PER_GB = 1024**3

# Devices at or below these figures are treated as low-performance
LOW_PERFORMANCE_CORES = 2
LOW_PERFORMANCE_MEMORY_GB = 2.0


class ConnectionQuality(StrEnum):
    """Coarse classification of the active network link."""

    UNKNOWN = "unknown"
    SLOW = "slow"
    FAST = "fast"


class EnvironmentProvider(Protocol):
    """Source of network and device information."""

    def is_online(self) -> bool: ...

    def connection_quality(self) -> ConnectionQuality: ...

    def hardware_concurrency(self) -> int: ...

    def device_memory_gb(self) -> float | None: ...

    def current_hour(self) -> int: ...


def is_low_performance(env: EnvironmentProvider) -> bool:
    """Return True if the device has few cores or little memory.

    A missing memory figure counts as 1 GB.
    """
    cores = env.hardware_concurrency() or 1
    memory = env.device_memory_gb()
    if memory is None:
        memory = 1.0
    return cores <= LOW_PERFORMANCE_CORES or memory <= LOW_PERFORMANCE_MEMORY_GB


@dataclass
class StaticEnvironment:
    """Environment with fixed answers.

    Defaults describe an online desktop with plenty of resources.
    """

    online: bool = True
    quality: ConnectionQuality = ConnectionQuality.FAST
    cores: int = 8
    memory_gb: float | None = 16.0
    hour: int = 20

    def is_online(self) -> bool:
        return self.online

    def connection_quality(self) -> ConnectionQuality:
        return self.quality

    def hardware_concurrency(self) -> int:
        return self.cores

    def device_memory_gb(self) -> float | None:
        return self.memory_gb

    def current_hour(self) -> int:
        return self.hour


class QtEnvironment:
    """Environment backed by QNetworkInformation and OS queries.

    The network backend is loaded lazily on first use. Without a
    backend the device is assumed online with unknown link quality.
    """

    def __init__(self) -> None:
        self._backend_checked = False
        self._info: QNetworkInformation | None = None

    def _network_info(self) -> QNetworkInformation | None:
        """Return the QNetworkInformation instance, loading it once."""
        if not self._backend_checked:
            self._backend_checked = True
            try:
                if QNetworkInformation.loadDefaultBackend():
                    self._info = QNetworkInformation.instance()
                else:
                    logger.debug("No QNetworkInformation backend available")
            except (AttributeError, RuntimeError) as e:
                logger.debug("QNetworkInformation unavailable: %s", e)
        return self._info

    def is_online(self) -> bool:
        info = self._network_info()
        if info is None:
            return True
        return info.reachability() != QNetworkInformation.Reachability.Disconnected

    def connection_quality(self) -> ConnectionQuality:
        """Classify the link from its transport medium.

        Qt reports the medium but not the cellular generation, so every
        cellular link counts as slow. This is an approximation: fast
        LTE or 5G links also get the slow-connection delay factor.
        """
        info = self._network_info()
        if info is None:
            return ConnectionQuality.UNKNOWN
        try:
            medium = info.transportMedium()
        except AttributeError:
            return ConnectionQuality.UNKNOWN
        if medium == QNetworkInformation.TransportMedium.Cellular:
            return ConnectionQuality.SLOW
        if medium == QNetworkInformation.TransportMedium.Unknown:
            return ConnectionQuality.UNKNOWN
        return ConnectionQuality.FAST

    def hardware_concurrency(self) -> int:
        return max(1, QThread.idealThreadCount())

    def device_memory_gb(self) -> float | None:
        try:
            total = os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
        except (AttributeError, OSError, ValueError):
            return None
        if total <= 0:
            return None
        return total / _BYTES_PER_GB

    def current_hour(self) -> int:
        return datetime.now().hour
