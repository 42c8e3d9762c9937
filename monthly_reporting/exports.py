# monthly_reporting_core/monthly_reporting/exports.py
# Monthly facility rows for download, as CSV text or JSON-ready records.

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Optional

import pandas as pd

from config import app_config
from .month_parser import parse_report_month_series
from .snapshot_cache import Snapshot

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = list(app_config.EXPORT_CSV_HEADERS.keys())


def get_monthly_data_for_export(
    snapshot: Snapshot,
    selected_regions: Optional[Iterable[str]] = None,
    selected_districts: Optional[Iterable[str]] = None,
    start_month: Optional[str] = None,
    end_month: Optional[str] = None,
    source_context: str = "ExportBuilder"
) -> pd.DataFrame:
    """
    Facility-month rows for the selected regions/districts within an inclusive month range.

    Empty selections mean "all". When a month bound is given, rows whose report month cannot
    be parsed are left out. The frame keeps region_id so the allow-list can still be applied.
    """
    records = snapshot.records
    if records.empty:
        return pd.DataFrame(columns=['region_id'] + EXPORT_COLUMNS)
    df = records.copy()
    df['date'] = parse_report_month_series(df['report_month'])

    regions = set(selected_regions or [])
    districts = set(selected_districts or [])
    if regions:
        df = df[df['region_id'].isin(regions)]
    if districts:
        df = df[df['district_id'].isin(districts)]
    if start_month is not None or end_month is not None:
        df = df[df['date'].notna()]
        if start_month is not None:
            df = df[df['date'] >= start_month]
        if end_month is not None:
            df = df[df['date'] <= end_month]

    export_df = pd.DataFrame({
        'region_id': df['region_id'],
        'region_name': df['region_name'],
        'district_name': df['district_name'],
        'facility_name': df['facility_name'],
        'unique_patients': df['total_patients'],
        'vaccine_stock': df['total_vials'],
        'date': df['date'].fillna(''),
    })
    export_df = export_df.sort_values(['region_name', 'district_name', 'facility_name', 'date'], kind='mergesort').reset_index(drop=True)
    logger.info(f"({source_context}) Prepared {len(export_df)} export rows (regions={sorted(regions)}, districts={sorted(districts)}, {start_month}..{end_month}).")
    return export_df


def export_to_csv(export_df: pd.DataFrame) -> str:
    """CSV text with the dashboard's download headers."""
    if export_df is None or export_df.empty:
        export_df = pd.DataFrame(columns=EXPORT_COLUMNS)
    csv_df = export_df[EXPORT_COLUMNS].rename(columns=app_config.EXPORT_CSV_HEADERS)
    return csv_df.to_csv(index=False, lineterminator='\n')


def export_to_json_payload(export_df: pd.DataFrame, exported_by: str, exported_at: Optional[datetime] = None) -> Dict[str, Any]:
    records = [] if export_df is None or export_df.empty else export_df[EXPORT_COLUMNS].to_dict(orient='records')
    return {
        'data': records,
        'timestamp': (exported_at or datetime.now(timezone.utc)).isoformat(),
        'exported_by': exported_by,
    }


def export_filename(on_date: Optional[date] = None) -> str:
    return f"{app_config.EXPORT_FILENAME_PREFIX}-{(on_date or date.today()).isoformat()}.csv"
