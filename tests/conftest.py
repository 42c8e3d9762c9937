# monthly_reporting_core/tests/conftest.py
# Pytest fixtures for the monthly reporting core.

import pytest
import pandas as pd
from datetime import date, datetime, timedelta, timezone
import sys
import os

# --- Path Setup for Imports ---
# Add the project root (parent of 'tests', contains 'config' and 'monthly_reporting') to sys.path
_current_conftest_dir = os.path.dirname(os.path.abspath(__file__))
_project_root_dir = os.path.abspath(os.path.join(_current_conftest_dir, os.pardir))

if _project_root_dir not in sys.path:
    sys.path.insert(0, _project_root_dir)

from monthly_reporting.snapshot_cache import Snapshot

AS_OF_DATE = date(2025, 5, 15)
CAPTURED_AT = datetime(2025, 5, 15, 8, 0, 0, tzinfo=timezone.utc)

RAW_COLUMNS = [
    'tangis_facility_id', 'facility_name', 'region_name', 'tangis_region_id',
    'district_council_name', 'tangis_district_council_id',
    'tally-total_patients', 'tally-total_vials', 'tally-report_month',
    'SubmissionDate', 'report_full_date'
]


def make_raw_row(facility_id, facility_name, region, district, patients, vials, month, submitted=""):
    region_id, region_name = region
    district_id, district_name = district
    return [facility_id, facility_name, region_name, region_id, district_name, district_id,
            patients, vials, month, submitted, ""]


ARUSHA = ("R1", "Arusha")
MTWARA = ("R2", "Mtwara")
ARUSHA_RURAL = ("D1", "Arusha Rural")
MERU = ("D2", "Meru")
NANYUMBU = ("D3", "Nanyumbu District Council")


class FakeClock:
    """Settable clock for cache freshness tests."""

    def __init__(self, start: datetime = CAPTURED_AT):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class CountingFetcher:
    """Fetch collaborator that records how often it was called and can be told to fail."""

    def __init__(self, df: pd.DataFrame):
        self.df = df
        self.calls = 0
        self.error = None

    def __call__(self) -> pd.DataFrame:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.df.copy()


# --- Fixture for Sample Monthly Records ---
@pytest.fixture
def raw_monthly_df() -> pd.DataFrame:
    """
    Raw rows in the source table's column layout: two regions, three districts, five facilities.
    F4 has a non-numeric patient tally and one unparseable month; F5 only reported long ago.
    """
    rows = [
        make_raw_row("F1", "Arusha DH", ARUSHA, ARUSHA_RURAL, "5", "10", "Apr (4/2025)", "2025-05-02 10:00:00"),
        make_raw_row("F1", "Arusha DH", ARUSHA, ARUSHA_RURAL, "3", "4", "May (5/2025)", "2025-06-01 09:00:00"),
        make_raw_row("F2", "Usa River HC", ARUSHA, ARUSHA_RURAL, "2", "", "Apr (4/2025)", "2025-05-03 11:00:00"),
        make_raw_row("F3", "Meru DH", ARUSHA, MERU, "7", "1", "Mar (3/2025)", "2025-04-04 08:30:00"),
        make_raw_row("F4", "Nanyumbu DH", MTWARA, NANYUMBU, "abc", "6", "Apr (4/2025)", "2025-05-05 12:00:00"),
        make_raw_row("F4", "Nanyumbu DH", MTWARA, NANYUMBU, "1", "1", "April 2025", "2025-05-06 12:00:00"),
        make_raw_row("F5", "Tengeru Disp", ARUSHA, MERU, "4", "2", "Jan (1/2023)", "2023-02-01 07:00:00"),
    ]
    return pd.DataFrame(rows, columns=RAW_COLUMNS)


@pytest.fixture
def sample_snapshot(raw_monthly_df: pd.DataFrame) -> Snapshot:
    return Snapshot.capture(raw_monthly_df, captured_at=CAPTURED_AT)


@pytest.fixture
def empty_snapshot() -> Snapshot:
    return Snapshot.capture(pd.DataFrame(), captured_at=CAPTURED_AT)


@pytest.fixture
def single_row_snapshot() -> Snapshot:
    rows = [make_raw_row("F1", "Arusha DH", ARUSHA, ARUSHA_RURAL, 5, 10, "Apr (4/2025)")]
    return Snapshot.capture(pd.DataFrame(rows, columns=RAW_COLUMNS), captured_at=CAPTURED_AT)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def counting_fetcher(raw_monthly_df: pd.DataFrame) -> CountingFetcher:
    return CountingFetcher(raw_monthly_df)
