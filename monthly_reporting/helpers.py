# monthly_reporting_core/monthly_reporting/helpers.py
# Column cleaning and type coercion shared by loaders and the snapshot cache.

import logging
from typing import Any

import numpy as np
import pandas as pd

from config import app_config
from .errors import SnapshotFetchError

logger = logging.getLogger(__name__)


def clean_column_names(df: pd.DataFrame) -> pd.DataFrame:
    if not isinstance(df, pd.DataFrame):
        logger.error(f"clean_column_names expects a pandas DataFrame, got {type(df)}.")
        return pd.DataFrame()
    df.columns = df.columns.astype(str).str.lower().str.replace('[^0-9a-zA-Z_]', '_', regex=True).str.replace('_+', '_', regex=True).str.strip('_')
    return df


def convert_to_numeric(series: pd.Series, default_value: Any = np.nan) -> pd.Series:
    if not isinstance(series, pd.Series):
        series = pd.Series(series, dtype=object)
    return pd.to_numeric(series, errors='coerce').fillna(default_value)


def clean_string_column(series: pd.Series) -> pd.Series:
    """Strip whitespace and map null markers to empty strings."""
    return series.fillna('').astype(str).str.strip().replace(app_config.MISSING_STRING_MARKERS, '')


def normalize_monthly_records(raw_df: pd.DataFrame, source_context: str = "RecordNormalizer") -> pd.DataFrame:
    """
    Brings a raw monthly table (CSV export or database rows) to the canonical record schema.

    Column names are cleaned and mapped through SOURCE_COLUMN_MAP, string fields are stripped
    with missing values as "", and the patient/vial tallies become integers defaulting to 0.
    Row order is preserved. A table with rows but without the identifier columns is
    rejected as malformed.
    """
    if not isinstance(raw_df, pd.DataFrame):
        raise SnapshotFetchError(f"Expected a DataFrame from the data source, got {type(raw_df).__name__}")
    all_columns = app_config.RECORD_STRING_COLUMNS + app_config.RECORD_NUMERIC_COLUMNS
    if raw_df.empty:
        logger.info(f"({source_context}) Source returned no rows; using an empty snapshot.")
        empty_df = pd.DataFrame({col: pd.Series(dtype=object) for col in app_config.RECORD_STRING_COLUMNS})
        for col in app_config.RECORD_NUMERIC_COLUMNS:
            empty_df[col] = pd.Series(dtype='int64')
        return empty_df[all_columns]

    df = clean_column_names(raw_df.copy())
    df = df.rename(columns=app_config.SOURCE_COLUMN_MAP)
    df = df.loc[:, ~df.columns.duplicated()]
    missing_ids = [col for col in app_config.RECORD_ID_COLUMNS if col not in df.columns]
    if missing_ids:
        raise SnapshotFetchError(f"Source data is missing identifier columns: {missing_ids}")

    for col in app_config.RECORD_STRING_COLUMNS:
        df[col] = clean_string_column(df.get(col, pd.Series([''] * len(df), index=df.index)))
    for col in app_config.RECORD_NUMERIC_COLUMNS:
        df[col] = convert_to_numeric(df.get(col, pd.Series([0] * len(df), index=df.index)), 0).astype('int64')
    logger.debug(f"({source_context}) Normalized {len(df)} records.")
    return df[all_columns].reset_index(drop=True)
