from __future__ import annotations

from .base import SettingsView


class CoreSettings(SettingsView):
    """Proxy view for database, auth and logging settings on root Settings."""

    FIELD_NAMES: tuple[str, ...] = (
        "api_prefix",
        "database_url",
        "log_level",
        "auth_enabled",
        "auth_tokens",
        "auth_token",
        "auth_user",
        "auth_disabled_user",
        "auth_admin_users",
        "admin_base_path",
    )
