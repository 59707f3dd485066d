"""
Configuration for the re-application engine.
Provides application-number, notification, expiry-reminder and submission-deadline settings.
"""

import os
from typing import Dict, Any, Tuple
from dataclasses import dataclass, field


def _default_service_prefixes() -> Dict[str, str]:
    return {"Certificate of Confirmation": "COC"}


@dataclass
class ReApplyConfig:
    """Configuration settings for re-application."""
    default_number_prefix: str = "NCIP"
    service_prefixes: Dict[str, str] = field(default_factory=_default_service_prefixes)
    number_allocation_attempts: int = 5
    expiry_reminder_days: Tuple[int, ...] = (30, 15, 7, 1)
    submission_deadline_days: int = 30
    deadline_reminder_days: Tuple[int, ...] = (7, 3, 1)
    notify_via_email: bool = True
    notify_via_sms: bool = False
    analytics_enabled: bool = True

    def number_prefix_for(self, service_type: str) -> str:
        return self.service_prefixes.get(service_type, self.default_number_prefix)


# Global configuration instance
_reapply_config = ReApplyConfig()


def get_reapply_config() -> ReApplyConfig:
    """Get current re-application configuration."""
    return _reapply_config


def update_reapply_config(**kwargs) -> ReApplyConfig:
    """
    Update re-application configuration settings.

    Args:
        **kwargs: Configuration parameters to update

    Returns:
        Updated configuration
    """
    global _reapply_config

    for key, value in kwargs.items():
        if hasattr(_reapply_config, key):
            setattr(_reapply_config, key, value)

    return _reapply_config


def _parse_days(raw: str) -> Tuple[int, ...]:
    return tuple(int(part.strip()) for part in raw.split(",") if part.strip())


def load_config_from_env():
    """Load configuration from environment variables."""
    config_updates = {}

    if os.getenv("REAPPLY_NUMBER_PREFIX") is not None:
        config_updates["default_number_prefix"] = os.getenv("REAPPLY_NUMBER_PREFIX", "NCIP")

    if os.getenv("REAPPLY_SERVICE_PREFIXES") is not None:
        # "Certificate of Confirmation=COC;Other Service=OTH"
        prefixes = {}
        for pair in os.getenv("REAPPLY_SERVICE_PREFIXES", "").split(";"):
            if "=" in pair:
                service, prefix = pair.split("=", 1)
                prefixes[service.strip()] = prefix.strip()
        if prefixes:
            config_updates["service_prefixes"] = prefixes

    if os.getenv("REAPPLY_NUMBER_ATTEMPTS") is not None:
        try:
            config_updates["number_allocation_attempts"] = int(os.getenv("REAPPLY_NUMBER_ATTEMPTS", "5"))
        except ValueError:
            pass

    if os.getenv("REAPPLY_EXPIRY_REMINDER_DAYS") is not None:
        try:
            config_updates["expiry_reminder_days"] = _parse_days(os.getenv("REAPPLY_EXPIRY_REMINDER_DAYS", ""))
        except ValueError:
            pass

    if os.getenv("REAPPLY_SUBMISSION_DEADLINE_DAYS") is not None:
        try:
            config_updates["submission_deadline_days"] = int(os.getenv("REAPPLY_SUBMISSION_DEADLINE_DAYS", "30"))
        except ValueError:
            pass

    if os.getenv("REAPPLY_DEADLINE_REMINDER_DAYS") is not None:
        try:
            config_updates["deadline_reminder_days"] = _parse_days(os.getenv("REAPPLY_DEADLINE_REMINDER_DAYS", ""))
        except ValueError:
            pass

    if os.getenv("REAPPLY_NOTIFY_EMAIL") is not None:
        config_updates["notify_via_email"] = os.getenv("REAPPLY_NOTIFY_EMAIL", "true").lower() == "true"

    if os.getenv("REAPPLY_NOTIFY_SMS") is not None:
        config_updates["notify_via_sms"] = os.getenv("REAPPLY_NOTIFY_SMS", "false").lower() == "true"

    if os.getenv("REAPPLY_ANALYTICS") is not None:
        config_updates["analytics_enabled"] = os.getenv("REAPPLY_ANALYTICS", "true").lower() == "true"

    if config_updates:
        update_reapply_config(**config_updates)


def get_config_dict() -> Dict[str, Any]:
    """Get configuration as dictionary."""
    return {
        "default_number_prefix": _reapply_config.default_number_prefix,
        "service_prefixes": dict(_reapply_config.service_prefixes),
        "number_allocation_attempts": _reapply_config.number_allocation_attempts,
        "expiry_reminder_days": list(_reapply_config.expiry_reminder_days),
        "submission_deadline_days": _reapply_config.submission_deadline_days,
        "deadline_reminder_days": list(_reapply_config.deadline_reminder_days),
        "notify_via_email": _reapply_config.notify_via_email,
        "notify_via_sms": _reapply_config.notify_via_sms,
        "analytics_enabled": _reapply_config.analytics_enabled
    }


# Load configuration from environment on import
load_config_from_env()
