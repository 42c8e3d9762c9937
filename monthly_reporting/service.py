# monthly_reporting_core/monthly_reporting/service.py
# Read operations the API layer calls: one snapshot per request, allow-list applied before returning.

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import pandas as pd

from config import app_config
from .access_filter import authorize_regions, group_regions_for_user, restrict_to_regions
from .aggregation import AggregateRow, aggregate_monthly_records
from .completeness import CompletenessNode, build_completeness_tree
from .exports import export_to_csv, export_to_json_payload, get_monthly_data_for_export
from .identity import FacilityInfo, RegionDistrictIdentity, get_identity_resolver
from .month_parser import available_months
from .snapshot_cache import Snapshot, SnapshotCache

logger = logging.getLogger(__name__)


class MonthlyReportingService:
    """
    Facade over the snapshot cache and the pure aggregation functions.

    Each operation reads the cache once and works on that snapshot only, so a refresh
    mid-request never mixes two snapshots. Requests naming regions outside a non-empty
    allow-list are rejected whole with UnauthorizedRegionError.
    """

    def __init__(self, cache: SnapshotCache, clock: Optional[Callable[[], Any]] = None):
        self.cache = cache
        self._clock = clock

    @classmethod
    def from_fetcher(cls, fetch_records: Callable[[], pd.DataFrame], ttl_seconds: int = app_config.CACHE_TTL_SECONDS) -> "MonthlyReportingService":
        return cls(SnapshotCache(fetch_records, ttl_seconds=ttl_seconds))

    def _snapshot(self) -> Snapshot:
        return self.cache.get()

    @staticmethod
    def _authorize(
        snapshot: Snapshot,
        allowed: List[str],
        region_ids: Iterable[Optional[str]] = (),
        district_ids: Iterable[Optional[str]] = ()
    ) -> None:
        """Rejects the request when a named region, or the region owning a named district, is outside the allow-list."""
        if not allowed:
            return
        requested = [rid for rid in region_ids if rid is not None]
        districts = [did for did in district_ids if did is not None]
        if districts:
            requested += get_identity_resolver(snapshot).owning_region_ids(districts)
        authorize_regions(list(dict.fromkeys(requested)), allowed)

    def _today(self) -> Optional[Any]:
        return self._clock() if self._clock else None

    def list_regions_and_districts(self) -> List[RegionDistrictIdentity]:
        return get_identity_resolver(self._snapshot()).region_district_pairs()

    def facility_by_id(self, facility_id: str) -> Optional[FacilityInfo]:
        return get_identity_resolver(self._snapshot()).facility_by_id(facility_id)

    def facility_ids(self, region_name: Optional[str] = None, district_name: Optional[str] = None) -> List[str]:
        return get_identity_resolver(self._snapshot()).facility_ids(region_name, district_name)

    def available_months(self) -> List[str]:
        return available_months(self._snapshot().records)

    def user_regions(self, allowed_region_names: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        return group_regions_for_user(self.list_regions_and_districts(), allowed_region_names)

    def aggregate(
        self,
        region_id: Optional[str] = None,
        district_id: Optional[str] = None,
        month_key: Optional[str] = None,
        allowed_region_ids: Optional[Iterable[str]] = None
    ) -> List[AggregateRow]:
        allowed = list(allowed_region_ids or [])
        snapshot = self._snapshot()
        self._authorize(snapshot, allowed, [region_id], [district_id])
        rows = aggregate_monthly_records(snapshot, region_id, district_id, month_key)
        return restrict_to_regions(rows, allowed)

    def completeness(
        self,
        region_id: Optional[str] = None,
        district_id: Optional[str] = None,
        allowed_region_ids: Optional[Iterable[str]] = None
    ) -> List[CompletenessNode]:
        allowed = list(allowed_region_ids or [])
        snapshot = self._snapshot()
        self._authorize(snapshot, allowed, [region_id], [district_id])
        nodes = build_completeness_tree(snapshot, region_id, district_id, as_of=self._today())
        return restrict_to_regions(nodes, allowed)

    def export(
        self,
        selected_regions: Optional[Iterable[str]] = None,
        selected_districts: Optional[Iterable[str]] = None,
        start_month: Optional[str] = None,
        end_month: Optional[str] = None,
        allowed_region_ids: Optional[Iterable[str]] = None,
        output_format: str = "csv",
        exported_by: str = ""
    ) -> Union[str, Dict[str, Any]]:
        """
        Export rows as CSV text or a JSON-ready payload.

        Raises:
            UnauthorizedRegionError: a selected region is outside the allow-list.
            ValueError: unsupported output format.
        """
        if output_format not in app_config.EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {output_format}")
        allowed = list(allowed_region_ids or [])
        regions = list(selected_regions or [])
        districts = list(selected_districts or [])
        snapshot = self._snapshot()
        self._authorize(snapshot, allowed, regions, districts)
        export_df = get_monthly_data_for_export(snapshot, regions, districts, start_month, end_month)
        export_df = restrict_to_regions(export_df, allowed)
        if output_format == "json":
            return export_to_json_payload(export_df, exported_by)
        return export_to_csv(export_df)

    def restrict_to_regions(self, rows: Any, allowed_region_ids: Optional[Iterable[str]]) -> Any:
        return restrict_to_regions(rows, allowed_region_ids)
