from .base import SettingsView
from .core import CoreSettings
from .policy import PolicySettings
from .runtime import RuntimeSettings

__all__ = [
    "SettingsView",
    "CoreSettings",
    "PolicySettings",
    "RuntimeSettings",
]
