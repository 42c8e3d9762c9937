# monthly_reporting_core/monthly_reporting/month_parser.py
# Normalizes free-text report-month labels such as "Apr (4/2025)" into "YYYY-MM" keys.

import re
import logging
from datetime import date
from typing import Any, List, Optional

import pandas as pd

from config import app_config

logger = logging.getLogger(__name__)

# Only the numeric "(<month>/<year>)" parenthetical is authoritative; years are four digits, months 1-12.
REPORT_MONTH_PATTERN = re.compile(r'\((\d{1,2})/(\d{4})\)')


def parse_report_month(raw_label: Any) -> Optional[str]:
    """Returns the canonical month key for a report-month label, or None when it has no valid "(M/YYYY)" part."""
    if not isinstance(raw_label, str) or not raw_label:
        return None
    match = REPORT_MONTH_PATTERN.search(raw_label)
    if not match:
        return None
    month, year = match.groups()
    if not 1 <= int(month) <= 12:
        return None
    return f"{year}-{month.zfill(2)}"


def parse_report_month_series(labels: pd.Series) -> pd.Series:
    if not isinstance(labels, pd.Series):
        return pd.Series([], dtype=object)
    if labels.empty:
        return pd.Series([], dtype=object, index=labels.index)
    parts = labels.astype(str).str.extract(REPORT_MONTH_PATTERN)
    valid_month = pd.to_numeric(parts[0], errors='coerce').between(1, 12)
    keys = parts[1] + '-' + parts[0].str.zfill(2)
    return pd.Series(
        [key if ok and isinstance(key, str) else None for key, ok in zip(keys, valid_month)],
        index=labels.index, dtype=object
    )


def trailing_month_keys(window_months: int = app_config.COMPLETENESS_WINDOW_MONTHS, as_of: Optional[Any] = None) -> List[str]:
    """
    Builds the trailing window of canonical month keys ending at the month of `as_of`.

    Args:
        window_months: Number of months in the window (the current month included).
        as_of: Reference date; defaults to today.

    Returns:
        Chronologically ordered month keys, exactly `window_months` entries.
    """
    if window_months <= 0:
        return []
    reference = pd.Timestamp(as_of if as_of is not None else date.today())
    periods = pd.period_range(end=reference.to_period('M'), periods=window_months, freq='M')
    return [period.strftime('%Y-%m') for period in periods]


def available_months(records: pd.DataFrame, source_context: str = "MonthCatalog") -> List[str]:
    """Unique parseable month keys present in the records, newest first."""
    if not isinstance(records, pd.DataFrame) or records.empty or 'report_month' not in records.columns:
        return []
    keys = parse_report_month_series(records['report_month']).dropna()
    months = sorted(set(keys), reverse=True)
    logger.debug(f"({source_context}) {len(months)} reporting months available.")
    return months


def default_month(months: List[str], as_of: Optional[Any] = None) -> str:
    """The newest available month, or the current month when nothing has been reported yet."""
    if months:
        return months[0]
    return trailing_month_keys(1, as_of)[0]
