from __future__ import annotations

from typing import Any


class SettingsView:
    """Attribute proxy onto a subset of the root Settings fields."""

    FIELD_NAMES: tuple[str, ...] = ()

    def __init__(self, root: Any) -> None:
        object.__setattr__(self, "_root", root)

    def __getattr__(self, name: str) -> Any:
        if name in self.FIELD_NAMES:
            return getattr(self._root, name)
        raise AttributeError(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self.FIELD_NAMES:
            setattr(self._root, name, value)
            return
        object.__setattr__(self, name, value)

    def as_dict(self) -> dict[str, Any]:
        return {name: getattr(self._root, name) for name in self.FIELD_NAMES}
