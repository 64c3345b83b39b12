from __future__ import annotations

from .base import SettingsView


class PolicySettings(SettingsView):
    """Proxy view for moderation and content policy settings on root Settings."""

    FIELD_NAMES: tuple[str, ...] = (
        "comment_report_threshold",
        "comment_admin_flag_reason",
        "chat_history_prompt_limit",
        "notification_list_limit",
        "preference_default_min_rating",
    )
