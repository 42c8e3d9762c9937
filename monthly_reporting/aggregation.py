# monthly_reporting_core/monthly_reporting/aggregation.py
# Region -> district -> facility sums of patients and vaccine vials.

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

import pandas as pd

from .identity import get_identity_resolver
from .month_parser import parse_report_month_series
from .snapshot_cache import Snapshot

logger = logging.getLogger(__name__)

SUM_COLUMNS = ['total_patients', 'total_vials']


@dataclass(frozen=True)
class AggregateRow:
    """
    One group member with its sums. Levels finer than the requested one are None,
    which means "not applicable" rather than "unknown".
    """
    region_id: str
    region_name: str
    total_patients: int
    total_vials: int
    district_id: Optional[str] = None
    district_name: Optional[str] = None
    facility_id: Optional[str] = None
    facility_name: Optional[str] = None

    @property
    def level(self) -> str:
        if self.facility_id is not None:
            return 'facility'
        if self.district_id is not None:
            return 'district'
        return 'region'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _grouping_level(region_id: Optional[str], district_id: Optional[str]) -> str:
    if district_id is not None and region_id is None:
        raise ValueError("A district filter requires a region filter; supply filters top-down.")
    if region_id is None:
        return 'region'
    if district_id is None:
        return 'district'
    return 'facility'


def aggregate_monthly_records(
    snapshot: Snapshot,
    region_id: Optional[str] = None,
    district_id: Optional[str] = None,
    month_key: Optional[str] = None,
    source_context: str = "Aggregator"
) -> List[AggregateRow]:
    """
    Sums patients and vaccine vials at the level implied by the filters.

    No filter groups by region, a region groups its districts, and region plus district groups
    that district's facilities. Every member of the scope appears in the result, with zero sums
    when `month_key` leaves it without rows. Unknown region or district IDs give an empty list.

    Raises:
        ValueError: A district was given without its region.
    """
    level = _grouping_level(region_id, district_id)
    records = snapshot.records
    if records.empty:
        return []
    resolver = get_identity_resolver(snapshot)

    if level == 'region':
        members = resolver.regions
        scope = records
        key_col = 'region_id'
    elif level == 'district':
        if not resolver.has_region(region_id):
            logger.info(f"({source_context}) Region '{region_id}' not in snapshot; empty result.")
            return []
        members = resolver.districts[resolver.districts['region_id'] == region_id]
        scope = records[records['region_id'] == region_id]
        key_col = 'district_id'
    else:
        if not resolver.has_district(region_id, district_id):
            logger.info(f"({source_context}) District '{district_id}' of region '{region_id}' not in snapshot; empty result.")
            return []
        directory = resolver.facility_directory
        members = directory[(directory['region_id'] == region_id) & (directory['district_id'] == district_id)]
        scope = records[(records['region_id'] == region_id) & (records['district_id'] == district_id)]
        key_col = 'facility_id'

    if month_key is not None:
        scope = scope[parse_report_month_series(scope['report_month']) == month_key]

    sums = scope.groupby(key_col, sort=False)[SUM_COLUMNS].sum()
    totals = members.merge(sums, how='left', left_on=key_col, right_index=True)
    totals[SUM_COLUMNS] = totals[SUM_COLUMNS].fillna(0).astype('int64')

    result: List[AggregateRow] = []
    for row in totals.itertuples(index=False):
        common = dict(
            region_id=row.region_id,
            region_name=resolver.region_names.get(row.region_id, row.region_name),
            total_patients=int(row.total_patients),
            total_vials=int(row.total_vials),
        )
        if level == 'region':
            result.append(AggregateRow(**common))
        elif level == 'district':
            result.append(AggregateRow(**common, district_id=row.district_id, district_name=row.district_name))
        else:
            result.append(AggregateRow(
                **common,
                district_id=row.district_id,
                district_name=resolver.district_names.get(row.district_id, row.district_name),
                facility_id=row.facility_id,
                facility_name=row.facility_name,
            ))
    logger.debug(f"({source_context}) {len(result)} {level} rows for region={region_id}, district={district_id}, month={month_key}.")
    return result


def aggregate_rows_to_dataframe(rows: List[AggregateRow]) -> pd.DataFrame:
    columns = ['region_id', 'region_name', 'district_id', 'district_name', 'facility_id', 'facility_name'] + SUM_COLUMNS
    if not rows:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame([row.to_dict() for row in rows])[columns]
