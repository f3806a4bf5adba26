"""
Configuration-driven scanner discovery.

Each host platform has a profile (a list of scanner definitions) in the
``discovery.profiles`` section of the runtime config. Discovery simulates the
platform enumeration protocol: an initial delay, then one "found" delay per
device. Scanner IDs are derived from platform and name, so rediscovering the
same device yields the same ID.
"""

from __future__ import annotations

import logging
import platform as _platform
import time
from typing import Any, Callable, Dict, Union
from uuid import NAMESPACE_URL, uuid5

from omegaconf import DictConfig, OmegaConf

from .models import Scanner, ScannerCapabilities, ScannerType, SystemType

logger = logging.getLogger(__name__)

# platform.system() names mapped onto scanner system classes
_PLATFORM_NAMES: Dict[str, SystemType] = {
    "windows": SystemType.WINDOWS,
    "darwin": SystemType.MACOS,
    "macos": SystemType.MACOS,
    "linux": SystemType.LINUX,
}


def detect_platform(override: Union[SystemType, str, None] = None) -> SystemType:
    """
    Resolve the host system class.

    Args:
        override: Explicit platform (a ``SystemType`` or a name such as "Darwin" or "MacOS")

    Returns:
        The matching ``SystemType``; unknown hosts fall back to Linux
    """
    if isinstance(override, SystemType):
        return override
    name = (override or _platform.system()).strip().lower()
    system = _PLATFORM_NAMES.get(name)
    if system is None:
        logger.warning(f"Unrecognised platform {name!r}, falling back to Linux discovery")
        return SystemType.LINUX
    return system


def stable_scanner_id(system_type: SystemType, name: str) -> str:
    return str(uuid5(NAMESPACE_URL, f"scanner://{system_type.value}/{name}"))


def build_scanner(definition: Dict[str, Any], system_type: SystemType) -> Scanner:
    capabilities = ScannerCapabilities(**(definition.get("capabilities") or {}))
    return Scanner(
        id=definition.get("id") or stable_scanner_id(system_type, definition["name"]),
        name=definition["name"],
        scanner_type=ScannerType(definition["scanner_type"]),
        capabilities=capabilities,
        system_type=system_type,
    )


class ConfiguredDiscovery:
    """
    Discovery strategy keyed by platform, backed by ``discovery.profiles``.

    Any object exposing ``inventory()``, ``discover(system_type)`` and
    ``api_label(system_type)`` can stand in for this class in ``ScannerService``.
    """

    def __init__(self, config: DictConfig, sleep: Callable[[float], None] = time.sleep) -> None:
        self._config = config.discovery
        self._sleep = sleep

    def _definitions(self, system_type: SystemType) -> list[Dict[str, Any]]:
        if system_type.value not in self._config.profiles:
            return []
        return OmegaConf.to_container(self._config.profiles[system_type.value], resolve=True)  # type: ignore[return-value]

    def inventory(self) -> list[Scanner]:
        """Every configured scanner across all platforms, built without delays."""
        return [
            build_scanner(definition, system_type)
            for system_type in SystemType
            for definition in self._definitions(system_type)
        ]

    def discover(self, system_type: SystemType) -> list[Scanner]:
        logger.info(f"Starting {self.api_label(system_type)} scanner discovery on {system_type.value}")
        self._sleep(float(self._config.initial_delay_seconds))

        found: list[Scanner] = []
        for definition in self._definitions(system_type):
            self._sleep(float(self._config.per_device_delay_seconds))
            scanner = build_scanner(definition, system_type)
            logger.info(f"Found scanner {scanner.name} ({scanner.scanner_type.value})")
            found.append(scanner)

        logger.info(f"Discovery finished: {len(found)} scanner(s) on {system_type.value}")
        return found

    def api_label(self, system_type: SystemType) -> str:
        if system_type.value not in self._config.api_labels:
            return "Unknown"
        return str(self._config.api_labels[system_type.value])
