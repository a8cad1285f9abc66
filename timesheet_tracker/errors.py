"""
Exceptions raised by the timesheet tracker.
"""


class TimesheetError(Exception):
    """Base exception for the timesheet tracker"""
    pass


class StorageError(TimesheetError):
    """Raised when a collection cannot be written to its backend"""
    pass
