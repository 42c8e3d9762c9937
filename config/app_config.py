# monthly_reporting_core/config/app_config.py
# Configuration for the Rabies Monthly Reporting core (data shaping & caching).

import os
import logging
from datetime import datetime

# --- Configure Logging ---
LOG_LEVEL = os.getenv("REPORTING_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
logger = logging.getLogger(__name__)

# --- Path Validation ---
def validate_path(path, description):
    """Validate file or directory path, log warning if missing."""
    if not os.path.exists(path):
        logger.warning(f"{description} not found: {path}")
    return path

# --- I. Core System & Directory Configuration ---
BASE_APP_ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
DATA_SOURCES_DIR = os.getenv("REPORTING_DATA_DIR", os.path.join(BASE_APP_ROOT_DIR, "data_sources"))

# Data source paths
MONTHLY_RECORDS_CSV = os.getenv("MONTHLY_RECORDS_CSV", validate_path(os.path.join(DATA_SOURCES_DIR, "monthly_tz.csv"), "Monthly records CSV"))

APP_NAME = "Rabies Monthly Reporting"
APP_VERSION = "1.2.0"
ORGANIZATION_NAME = "Regional Health Management Teams"
APP_FOOTER_TEXT = f"© {datetime.now().year} {ORGANIZATION_NAME}. Monthly facility reporting for rabies post-exposure care."

# --- II. Database (live source) ---
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "5432"))
DB_USER = os.getenv("DB_USER", "")
DB_PASSWORD = os.getenv("DB_PASSWORD", "")
DB_NAME = os.getenv("DB_NAME", "")
DB_TABLE = os.getenv("DB_TABLE", "monthly_tz")
DB_SSLMODE = os.getenv("DB_SSLMODE", "require")
DB_CONNECT_TIMEOUT_SECONDS = 30
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)

# --- III. Authorization provider (region allow-lists) ---
PMP_BASE_URL = os.getenv("PMP_BASE_URL", "http://localhost:5000")
PMP_USERNAME = os.getenv("PMP_USERNAME", "service-account-audrey")
PMP_PASSWORD = os.getenv("PMP_PASSWORD", "")
PMP_LOGIN_PATH = "/api/v1/security/login"
PMP_REFRESH_PATH = "/api/v1/security/refresh"
PMP_WHITELIST_PATH = "/audrey/v1/user_whitelist"
PMP_REQUEST_TIMEOUT_SECONDS = 30
PMP_ACCESS_TOKEN_LIFETIME_SECONDS = 15 * 60

# --- IV. Caching & Windows ---
CACHE_TTL_SECONDS = 3600
COMPLETENESS_WINDOW_MONTHS = 12

# --- V. Data Semantics ---
# Source column names (after cleaning) -> canonical record fields
SOURCE_COLUMN_MAP = {
    'tangis_facility_id': 'facility_id',
    'tangis_region_id': 'region_id',
    'tangis_district_council_id': 'district_id',
    'district_council_name': 'district_name',
    'tally_total_patients': 'total_patients',
    'tally_total_vials': 'total_vials',
    'tally_report_month': 'report_month',
    'submissiondate': 'submission_date',
}
RECORD_ID_COLUMNS = ['facility_id', 'region_id', 'district_id']
RECORD_STRING_COLUMNS = [
    'facility_id', 'facility_name', 'region_id', 'region_name',
    'district_id', 'district_name', 'report_month', 'submission_date', 'report_full_date'
]
RECORD_NUMERIC_COLUMNS = ['total_patients', 'total_vials']
MISSING_STRING_MARKERS = ['nan', 'None', 'NaN', 'null']

# --- VI. Export ---
EXPORT_CSV_HEADERS = {
    'region_name': "Region Name",
    'district_name': "District Name",
    'facility_name': "Facility Name",
    'unique_patients': "Unique Patients",
    'vaccine_stock': "Vaccine Stock",
    'date': "Date",
}
EXPORT_FILENAME_PREFIX = "rabies-data-export"
EXPORT_FORMATS = ["csv", "json"]

# --- End of Configuration ---
