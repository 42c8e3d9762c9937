# monthly_reporting_core/monthly_reporting/errors.py
# Exceptions surfaced to callers of the reporting core.

from typing import Iterable


class MonthlyReportingError(Exception):
    """Base class for all errors raised by the reporting core."""


class SnapshotFetchError(MonthlyReportingError):
    """The upstream data source was unreachable or returned malformed data."""


class UnauthorizedRegionError(MonthlyReportingError):
    """A request named regions outside the caller's allow-list."""

    def __init__(self, region_ids: Iterable[str]):
        self.region_ids = list(region_ids)
        super().__init__(f"Access denied for regions: {', '.join(self.region_ids)}")


class AccessProviderError(MonthlyReportingError):
    """The authorization provider could not be reached or rejected the service account."""


class UserNotWhitelistedError(MonthlyReportingError):
    """The user has no active whitelist entry and may not see any region."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"No active whitelist entry for {email}")
