"""
Exception hierarchy for the achievement & progress engine.

Each error subclasses the builtin that ``handle_service_error`` already knows
how to map to an HTTP status (ValueError -> 400, RuntimeError -> 503).
"""


class AchievementEngineError(Exception):
    """Base class for all achievement engine failures."""


class CatalogLoadError(AchievementEngineError, RuntimeError):
    """The achievement catalog could not be loaded or failed validation."""


class MetricsValidationError(AchievementEngineError, ValueError):
    """A metrics snapshot is malformed and cannot be evaluated."""


class StoreUnavailableError(AchievementEngineError, RuntimeError):
    """The authoritative store could not be reached or rejected the write."""


class NotificationDeliveryError(AchievementEngineError, RuntimeError):
    """An unlock notification could not be delivered."""
