# monthly_reporting_core/monthly_reporting/loaders.py
# Fetch collaborators for the snapshot cache: the CSV export and the live monthly table.

import os
import logging
from typing import Optional

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from config import app_config
from .errors import SnapshotFetchError

logger = logging.getLogger(__name__)

MONTHLY_RECORDS_QUERY = """
    SELECT
        tangis_facility_id,
        region_name,
        tangis_region_id,
        district_council_name,
        tangis_district_council_id,
        facility_name,
        CAST("tally-total_patients" AS TEXT) AS tally_total_patients,
        CAST("tally-total_vials" AS TEXT) AS tally_total_vials,
        CAST("SubmissionDate" AS TEXT) AS submission_date,
        report_full_date,
        "tally-report_month" AS tally_report_month
    FROM {table}
    ORDER BY "SubmissionDate" DESC, region_name, district_council_name, facility_name
"""

_engine: Optional[Engine] = None


def get_db_engine() -> Engine:
    """Lazily creates the engine for the live monthly table."""
    global _engine
    if _engine is None:
        _engine = create_engine(
            app_config.DATABASE_URL,
            pool_pre_ping=True,
            connect_args={
                'sslmode': app_config.DB_SSLMODE,
                'connect_timeout': app_config.DB_CONNECT_TIMEOUT_SECONDS,
            },
        )
    return _engine


def load_monthly_records_csv(file_path: Optional[str] = None, source_context: str = "CSVLoader") -> pd.DataFrame:
    actual_file_path = file_path or app_config.MONTHLY_RECORDS_CSV
    logger.info(f"({source_context}) Loading monthly records from: {actual_file_path}")
    if not os.path.exists(actual_file_path):
        logger.error(f"({source_context}) Monthly records file not found: {actual_file_path}")
        raise SnapshotFetchError(f"Monthly records file not found: {actual_file_path}")
    try:
        df = pd.read_csv(actual_file_path, dtype=str, keep_default_na=False, skip_blank_lines=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        logger.error(f"({source_context}) Error parsing monthly records CSV: {e}")
        raise SnapshotFetchError(f"Could not parse monthly records CSV: {e}") from e
    logger.info(f"({source_context}) Loaded {len(df)} raw records. Columns: {df.columns.tolist()}")
    return df


def load_monthly_records_db(engine: Optional[Engine] = None, table: Optional[str] = None, source_context: str = "DBLoader") -> pd.DataFrame:
    """
    Reads the live monthly table, newest submissions first.

    Args:
        engine: SQLAlchemy engine; defaults to the configured database.
        table: Table name; defaults to app_config.DB_TABLE.

    Raises:
        SnapshotFetchError: The database could not be reached or the query failed.
    """
    actual_table = table or app_config.DB_TABLE
    query = MONTHLY_RECORDS_QUERY.format(table=actual_table)
    logger.info(f"({source_context}) Querying monthly records from table '{actual_table}'")
    try:
        db_engine = engine if engine is not None else get_db_engine()
        with db_engine.connect() as connection:
            df = pd.read_sql(text(query), connection)
    except SQLAlchemyError as e:
        logger.error(f"({source_context}) Failed to fetch data from database: {e}")
        raise SnapshotFetchError(f"Failed to fetch data from database: {e}") from e
    logger.info(f"({source_context}) Fetched {len(df)} records from database.")
    return df
