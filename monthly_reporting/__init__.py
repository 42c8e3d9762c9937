# monthly_reporting_core/monthly_reporting/__init__.py
# Public API of the monthly reporting core.

"""
Caching, aggregation and completeness logic for monthly facility reports.

Import from here rather than from the submodules; the API layer only needs
MonthlyReportingService, the loaders and the error types.
"""

from .errors import (
    MonthlyReportingError,
    SnapshotFetchError,
    UnauthorizedRegionError,
    AccessProviderError,
    UserNotWhitelistedError
)

from .month_parser import (
    parse_report_month,
    parse_report_month_series,
    trailing_month_keys,
    available_months,
    default_month
)

from .loaders import (
    load_monthly_records_csv,
    load_monthly_records_db
)

from .snapshot_cache import Snapshot, SnapshotCache

from .identity import (
    FacilityInfo,
    IdentityResolver,
    RegionDistrictIdentity,
    RegionIdentity,
    get_identity_resolver
)

from .aggregation import AggregateRow, aggregate_monthly_records

from .completeness import (
    CompletenessNode,
    build_completeness_tree,
    completeness_to_dataframe
)

from .access_filter import (
    AccessSession,
    PMPAccessClient,
    authorize_regions,
    restrict_to_regions,
    is_email_whitelisted
)

from .exports import get_monthly_data_for_export, export_to_csv, export_filename

from .service import MonthlyReportingService


__all__ = [
    "MonthlyReportingError",
    "SnapshotFetchError",
    "UnauthorizedRegionError",
    "AccessProviderError",
    "UserNotWhitelistedError",
    "parse_report_month",
    "parse_report_month_series",
    "trailing_month_keys",
    "available_months",
    "default_month",
    "load_monthly_records_csv",
    "load_monthly_records_db",
    "Snapshot",
    "SnapshotCache",
    "FacilityInfo",
    "IdentityResolver",
    "RegionDistrictIdentity",
    "RegionIdentity",
    "get_identity_resolver",
    "AggregateRow",
    "aggregate_monthly_records",
    "CompletenessNode",
    "build_completeness_tree",
    "completeness_to_dataframe",
    "AccessSession",
    "PMPAccessClient",
    "authorize_regions",
    "restrict_to_regions",
    "is_email_whitelisted",
    "get_monthly_data_for_export",
    "export_to_csv",
    "export_filename",
    "MonthlyReportingService",
]
