# monthly_reporting_core/monthly_reporting/access_filter.py
# Region allow-list boundary and the client for the authorization provider (PMP).

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
import requests

from config import app_config
from .errors import AccessProviderError, UnauthorizedRegionError, UserNotWhitelistedError
from .identity import IdentityResolver, RegionDistrictIdentity

logger = logging.getLogger(__name__)


# --- I. Allow-list enforcement ---
def _row_region_id(row: Any) -> Optional[str]:
    if isinstance(row, dict):
        return row.get('region_id', row.get('regionID'))
    return getattr(row, 'region_id', None)


def restrict_to_regions(rows: Any, allowed_region_ids: Optional[Iterable[str]]) -> Any:
    """
    Keeps only rows whose region is in the allow-list. An empty allow-list means no restriction.

    Accepts a DataFrame with a 'region_id' column, or a list of AggregateRows,
    CompletenessNodes or dicts.
    """
    allowed = set(allowed_region_ids or [])
    if not allowed:
        return rows
    if isinstance(rows, pd.DataFrame):
        if 'region_id' not in rows.columns:
            logger.warning("restrict_to_regions: DataFrame has no 'region_id' column; returning no rows.")
            return rows.iloc[0:0]
        return rows[rows['region_id'].isin(allowed)]
    return [row for row in rows if _row_region_id(row) in allowed]


def authorize_regions(requested_region_ids: Optional[Iterable[str]], allowed_region_ids: Optional[Iterable[str]]) -> None:
    """
    Rejects the whole request when any requested region is outside a non-empty allow-list.

    Raises:
        UnauthorizedRegionError: listing the disallowed region IDs.
    """
    allowed = set(allowed_region_ids or [])
    if not allowed:
        return
    unauthorized = [rid for rid in (requested_region_ids or []) if rid not in allowed]
    if unauthorized:
        logger.warning(f"Rejected request for regions outside allow-list: {unauthorized}")
        raise UnauthorizedRegionError(unauthorized)


def resolve_allowed_region_ids(region_names: Iterable[str], resolver: IdentityResolver) -> List[str]:
    """Translates allow-listed region names to the region IDs present in the snapshot."""
    wanted = {name.strip() for name in region_names if name}
    return [region.region_id for region in resolver.unique_regions() if region.region_name.strip() in wanted]


def group_regions_for_user(
    pairs: Sequence[RegionDistrictIdentity], allowed_region_names: Optional[Iterable[str]] = None
) -> Dict[str, Any]:
    """
    Groups region/district identities into regions with their districts for a user.

    With an empty allow-list every region is returned and `is_all_regions` is True.
    """
    allowed = set(allowed_region_names or [])
    regions: Dict[str, Dict[str, Any]] = {}
    for pair in pairs:
        if allowed and pair.region_name not in allowed:
            continue
        region = regions.setdefault(pair.region_id, {
            'region_id': pair.region_id, 'region_name': pair.region_name, 'districts': []
        })
        region['districts'].append({'district_id': pair.district_id, 'district_name': pair.district_name})
    return {'regions': list(regions.values()), 'is_all_regions': not allowed}


# --- II. Authorization provider client ---
@dataclass(frozen=True)
class AccessSession:
    """Tokens issued by the authorization provider; passed explicitly, never held globally."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at


class PMPAccessClient:
    """
    Talks to the PMP service for the user whitelist and per-user region allow-lists.

    Every call takes and returns an AccessSession so no token state lives on the client.
    """

    def __init__(
        self,
        base_url: str = app_config.PMP_BASE_URL,
        username: str = app_config.PMP_USERNAME,
        password: str = app_config.PMP_PASSWORD,
        timeout: float = app_config.PMP_REQUEST_TIMEOUT_SECONDS,
        http: Any = requests
    ):
        self.base_url = base_url.rstrip('/')
        self.username = username
        self.password = password
        self.timeout = timeout
        self.http = http

    def _expiry(self) -> datetime:
        return datetime.now(timezone.utc) + timedelta(seconds=app_config.PMP_ACCESS_TOKEN_LIFETIME_SECONDS)

    def authenticate(self) -> AccessSession:
        url = f"{self.base_url}{app_config.PMP_LOGIN_PATH}"
        payload = {'password': self.password, 'provider': 'db', 'refresh': True, 'username': self.username}
        try:
            response = self.http.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"PMP authentication failed: {e}")
            raise AccessProviderError(f"PMP authentication failed: {e}") from e
        return AccessSession(access_token=data['access_token'], refresh_token=data.get('refresh_token'), expires_at=self._expiry())

    def refresh(self, session: AccessSession) -> AccessSession:
        """New access token from the refresh token; falls back to a fresh login when refresh is refused."""
        if not session.refresh_token:
            return self.authenticate()
        url = f"{self.base_url}{app_config.PMP_REFRESH_PATH}"
        try:
            response = self.http.post(url, headers={'Authorization': f"Bearer {session.refresh_token}"}, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.warning(f"PMP token refresh failed, re-authenticating: {e}")
            return self.authenticate()
        return replace(session, access_token=data['access_token'], expires_at=self._expiry())

    def ensure_session(self, session: Optional[AccessSession]) -> AccessSession:
        if session is None:
            return self.authenticate()
        if session.is_expired():
            return self.refresh(session)
        return session

    def fetch_whitelist(self, session: Optional[AccessSession]) -> Tuple[List[Dict[str, Any]], AccessSession]:
        """Active whitelist entries; a 401 triggers one token refresh and retry."""
        session = self.ensure_session(session)
        url = f"{self.base_url}{app_config.PMP_WHITELIST_PATH}"
        try:
            response = self.http.get(url, headers={'Authorization': f"Bearer {session.access_token}"}, timeout=self.timeout)
            if response.status_code == 401:
                session = self.refresh(session)
                response = self.http.get(url, headers={'Authorization': f"Bearer {session.access_token}"}, timeout=self.timeout)
            response.raise_for_status()
            entries = response.json()
        except requests.RequestException as e:
            logger.error(f"Failed to fetch whitelist from PMP: {e}")
            raise AccessProviderError(f"Failed to fetch whitelist from PMP: {e}") from e
        return [entry for entry in entries if entry.get('active') is not False], session

    def list_allowed_regions(self, session: Optional[AccessSession], email: str) -> Tuple[List[str], AccessSession]:
        """
        Region names the user may see; an empty list means no region restriction.

        Raises:
            UserNotWhitelistedError: the user has no entry, or only an inactive one.
        """
        entries, session = self.fetch_whitelist(session)
        normalized_email = email.strip().lower()
        for entry in entries:
            if str(entry.get('email', '')).strip().lower() == normalized_email:
                return list(entry.get('regions') or []), session
        logger.warning(f"No active whitelist entry for {normalized_email}; denying region access.")
        raise UserNotWhitelistedError(normalized_email)


def is_email_whitelisted(client: PMPAccessClient, email: str, session: Optional[AccessSession] = None) -> bool:
    """Whether an active whitelist entry exists for the email. Provider failures deny access."""
    normalized_email = email.strip().lower()
    try:
        entries, _ = client.fetch_whitelist(session)
    except AccessProviderError as e:
        logger.error(f"Error checking email whitelist, denying access: {e}")
        return False
    allowed = any(str(entry.get('email', '')).strip().lower() == normalized_email for entry in entries)
    logger.info(f"Whitelist check for {normalized_email}: {'ALLOWED' if allowed else 'DENIED'}")
    return allowed
