# monthly_reporting_core/monthly_reporting/completeness.py
# Rolling reporting-completeness tree: facility booleans rolled up into district and region percentages.

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from config import app_config
from .identity import get_identity_resolver
from .month_parser import parse_report_month_series, trailing_month_keys
from .snapshot_cache import Snapshot

logger = logging.getLogger(__name__)


@dataclass
class CompletenessNode:
    """
    A region, district or facility in the completeness tree.

    Facilities map each window month to whether they reported. Districts and regions map it
    to a 0-100 percentage and also keep the facility counts behind that percentage, so each
    parent is derived from its immediate children only.
    """
    level: str
    node_id: str
    name: str
    months: Dict[str, Union[bool, int]]
    children: List["CompletenessNode"] = field(default_factory=list)
    facility_count: int = 1
    reporting_counts: Dict[str, int] = field(default_factory=dict)
    region_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'level': self.level,
            'id': self.node_id,
            'name': self.name,
            'months': dict(self.months),
            'children': [child.to_dict() for child in self.children],
        }


def completeness_percentage(reporting: int, total: int) -> int:
    """round(100 * reporting / total), halves rounded up; 0 when there is nothing to report."""
    if total <= 0:
        return 0
    return (200 * reporting + total) // (2 * total)


def _facility_node(facility: Any, reported_months: set, months: List[str]) -> CompletenessNode:
    flags = {month: month in reported_months for month in months}
    return CompletenessNode(
        level='facility', node_id=facility.facility_id, name=facility.facility_name,
        months=flags, facility_count=1,
        reporting_counts={month: int(flag) for month, flag in flags.items()},
        region_id=facility.region_id,
    )


def _rollup_node(level: str, node_id: str, name: str, children: List[CompletenessNode], months: List[str], region_id: str) -> CompletenessNode:
    # Children carry facility counts, so a region sums facilities rather than averaging district percentages.
    facility_count = sum(child.facility_count for child in children)
    reporting_counts = {month: sum(child.reporting_counts.get(month, 0) for child in children) for month in months}
    return CompletenessNode(
        level=level, node_id=node_id, name=name,
        months={month: completeness_percentage(reporting_counts[month], facility_count) for month in months},
        children=children, facility_count=facility_count,
        reporting_counts=reporting_counts, region_id=region_id,
    )


def build_completeness_tree(
    snapshot: Snapshot,
    region_id: Optional[str] = None,
    district_id: Optional[str] = None,
    as_of: Optional[Any] = None,
    window_months: int = app_config.COMPLETENESS_WINDOW_MONTHS,
    source_context: str = "CompletenessEngine"
) -> List[CompletenessNode]:
    """
    Builds one completeness tree per region for the trailing window ending at `as_of`'s month.

    The facility set comes from the whole snapshot, so facilities that never reported inside
    the window still appear (with every month False). Unknown region/district IDs give [].
    """
    records = snapshot.records
    months = trailing_month_keys(window_months, as_of)
    if records.empty or not months:
        return []
    resolver = get_identity_resolver(snapshot)

    facilities = resolver.facility_directory
    if region_id is not None:
        facilities = facilities[facilities['region_id'] == region_id]
    if district_id is not None:
        facilities = facilities[facilities['district_id'] == district_id]
    if facilities.empty:
        logger.info(f"({source_context}) No facilities for region={region_id}, district={district_id}.")
        return []

    month_keys = parse_report_month_series(records['report_month'])
    in_window = records.assign(month_key=month_keys)[month_keys.isin(months)]
    reported: Dict[str, set] = {}
    for facility_id, month_key in in_window[['facility_id', 'month_key']].drop_duplicates().itertuples(index=False):
        reported.setdefault(facility_id, set()).add(month_key)

    forest: List[CompletenessNode] = []
    for reg_id, region_facilities in facilities.groupby('region_id', sort=False):
        district_nodes = []
        for dist_id, district_facilities in region_facilities.groupby('district_id', sort=False):
            facility_nodes = [_facility_node(f, reported.get(f.facility_id, set()), months) for f in district_facilities.itertuples(index=False)]
            district_name = resolver.district_names.get(dist_id, district_facilities['district_name'].iloc[0])
            district_nodes.append(_rollup_node('district', dist_id, district_name, facility_nodes, months, reg_id))
        region_name = resolver.region_names.get(reg_id, region_facilities['region_name'].iloc[0])
        forest.append(_rollup_node('region', reg_id, region_name, district_nodes, months, reg_id))
    logger.info(f"({source_context}) Completeness for {len(facilities)} facilities in {len(forest)} regions, {months[0]}..{months[-1]}.")
    return forest


def completeness_to_dataframe(nodes: List[CompletenessNode]) -> pd.DataFrame:
    """Flattens a completeness forest to one row per node (depth-first), one column per month."""
    rows = []

    def _walk(node: CompletenessNode, district_id: Optional[str]) -> None:
        if node.level == 'district':
            district_id = node.node_id
        row = {
            'level': node.level,
            'region_id': node.region_id,
            'district_id': district_id,
            'node_id': node.node_id,
            'name': node.name,
            'facility_count': node.facility_count,
        }
        row.update(node.months)
        rows.append(row)
        for child in node.children:
            _walk(child, district_id)

    for root in nodes:
        _walk(root, None)
    return pd.DataFrame(rows)
