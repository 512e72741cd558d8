"""
Error taxonomy for the sleep alarm core.

Expected failures (scheduling) travel inside a Result; the rest are raised.
"""


class SleepAlarmError(Exception):
    """Base class for all sleep alarm errors."""


class SchedulingFailureError(SleepAlarmError):
    """The alarm scheduler could not register or cancel a deadline."""


class PermissionDeniedError(SleepAlarmError):
    """The activity data source is unavailable, so monitoring cannot start."""


class InconsistentStateError(SleepAlarmError):
    """The persisted record has both start_time and wake_time set."""


class SessionStoreError(SleepAlarmError):
    """The persisted session record could not be written."""
