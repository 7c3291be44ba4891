"""
Layout Registry

Central registry for resolving layout keys to their structured layout
descriptions. Keys are versioned: ``<name>.v<N>`` (e.g. 'invoice.v1').
A lookup by bare name ('invoice') resolves to the highest registered
version, so callers can either pin a version or follow the latest one.
"""

import re
from typing import Callable, Optional

from .layout import Layout


LAYOUT_KEY_PATTERN = re.compile(r'^(?P<name>[a-z][a-z0-9_]*)(?:\.v(?P<version>[1-9][0-9]*))?$')


def parse_layout_key(layout_key: str) -> tuple[str, Optional[int]]:
    """
    Split a layout key into its name and version.

    Returns:
        (name, version); version is None for a bare name

    Raises:
        ValueError: If the key is not '<name>' or '<name>.v<N>'
    """
    match = LAYOUT_KEY_PATTERN.match(layout_key) if isinstance(layout_key, str) else None
    if match is None:
        raise ValueError(f"Invalid layout key '{layout_key}'; expected '<name>.v<N>'")
    version = match.group('version')
    return match.group('name'), int(version) if version else None


class LayoutRegistry:
    """Registry for structured layouts, grouped by name and version"""

    def __init__(self):
        self._layouts: dict[str, dict[int, Callable[[], Layout]]] = {}

    def register(self, layout_key: str, layout_factory: Callable[[], Layout]) -> None:
        """
        Register a layout version.

        Args:
            layout_key: Versioned identifier for the layout (e.g., 'invoice.v1')
            layout_factory: Factory function that returns the Layout

        Raises:
            ValueError: If the key has no version or is already registered
        """
        name, version = parse_layout_key(layout_key)
        if version is None:
            raise ValueError(f"Layout key '{layout_key}' must name a version, e.g. '{layout_key}.v1'")
        versions = self._layouts.setdefault(name, {})
        if version in versions:
            raise ValueError(f"Layout '{layout_key}' is already registered")
        versions[version] = layout_factory

    def resolve(self, layout_key: str, version: Optional[int] = None) -> str:
        """
        Resolve a bare or versioned key to the registered versioned key.

        Args:
            layout_key: 'invoice' or 'invoice.v1'
            version: Version to pin when layout_key is a bare name

        Returns:
            Registered key such as 'invoice.v2'

        Raises:
            KeyError: If no matching layout version is registered
        """
        try:
            name, pinned = parse_layout_key(layout_key)
        except ValueError:
            raise KeyError(f"Layout '{layout_key}' not found")
        if pinned is not None and version is not None and pinned != version:
            raise KeyError(f"Layout '{layout_key}' not found in version {version}")

        versions = self._layouts.get(name)
        if not versions:
            raise KeyError(f"Layout '{layout_key}' not found")
        wanted = pinned or version
        if wanted is None:
            wanted = max(versions)
        elif wanted not in versions:
            raise KeyError(f"Layout '{name}.v{wanted}' not found")
        return f"{name}.v{wanted}"

    def get_layout(self, layout_key: str, version: Optional[int] = None) -> Layout:
        """
        Get a layout by its key.

        Raises:
            KeyError: If the layout key is not registered
        """
        name, resolved = parse_layout_key(self.resolve(layout_key, version))
        return self._layouts[name][resolved]()

    def versions(self, name: str) -> list[int]:
        """Registered versions of a layout, oldest first"""
        return sorted(self._layouts.get(name, ()))

    def is_registered(self, layout_key: str) -> bool:
        """Check if a bare or versioned layout key resolves"""
        try:
            self.resolve(layout_key)
        except KeyError:
            return False
        return True

    def list_layouts(self) -> list[str]:
        """List all registered versioned layout keys"""
        return [
            f"{name}.v{version}"
            for name in sorted(self._layouts)
            for version in sorted(self._layouts[name])
        ]


# Global registry instance
_registry = LayoutRegistry()


def register_layout(layout_key: str, layout_factory: Callable[[], Layout]) -> None:
    """Register a layout in the global registry"""
    _registry.register(layout_key, layout_factory)


def get_layout(layout_key: str, version: Optional[int] = None) -> Layout:
    """Get a layout from the global registry"""
    return _registry.get_layout(layout_key, version)


def is_registered(layout_key: str) -> bool:
    return _registry.is_registered(layout_key)


def list_layouts() -> list[str]:
    """List all registered layout keys"""
    return _registry.list_layouts()
