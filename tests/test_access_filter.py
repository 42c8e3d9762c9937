# monthly_reporting_core/tests/test_access_filter.py
# Pytest tests for allow-list enforcement and the PMP authorization client.

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import pandas as pd
import requests

from monthly_reporting.access_filter import (
    AccessSession,
    PMPAccessClient,
    authorize_regions,
    group_regions_for_user,
    is_email_whitelisted,
    resolve_allowed_region_ids,
    restrict_to_regions
)
from monthly_reporting.aggregation import aggregate_monthly_records
from monthly_reporting.errors import AccessProviderError, UnauthorizedRegionError, UserNotWhitelistedError
from monthly_reporting.identity import get_identity_resolver


# --- Allow-list enforcement ---
def test_restrict_to_regions_on_aggregate_rows(sample_snapshot):
    rows = aggregate_monthly_records(sample_snapshot)
    assert [r.region_id for r in restrict_to_regions(rows, ["R2"])] == ["R2"]
    assert restrict_to_regions(rows, []) is rows
    assert restrict_to_regions(rows, None) is rows


def test_restrict_to_regions_on_dataframe_and_dicts():
    df = pd.DataFrame({'region_id': ["R1", "R2", "R1"], 'value': [1, 2, 3]})
    assert restrict_to_regions(df, ["R1"])['value'].tolist() == [1, 3]
    assert restrict_to_regions(pd.DataFrame({'value': [1]}), ["R1"]).empty
    dicts = [{'regionID': "R1"}, {'region_id': "R2"}]
    assert restrict_to_regions(dicts, ["R2"]) == [{'region_id': "R2"}]


def test_authorize_regions_hard_rejects():
    authorize_regions(["R1"], ["R1", "R2"])
    authorize_regions(["R9"], [])
    with pytest.raises(UnauthorizedRegionError) as excinfo:
        authorize_regions(["R1", "R3", "R4"], ["R1"])
    assert excinfo.value.region_ids == ["R3", "R4"]


def test_resolve_allowed_region_ids(sample_snapshot):
    resolver = get_identity_resolver(sample_snapshot)
    assert resolve_allowed_region_ids(["Mtwara", " Arusha "], resolver) == ["R1", "R2"]
    assert resolve_allowed_region_ids(["Kigoma"], resolver) == []


def test_group_regions_for_user(sample_snapshot):
    pairs = get_identity_resolver(sample_snapshot).region_district_pairs()
    everything = group_regions_for_user(pairs, [])
    assert everything['is_all_regions'] is True
    assert [r['region_id'] for r in everything['regions']] == ["R1", "R2"]
    assert [d['district_id'] for d in everything['regions'][0]['districts']] == ["D1", "D2"]

    limited = group_regions_for_user(pairs, ["Mtwara"])
    assert limited['is_all_regions'] is False
    assert limited['regions'] == [{
        'region_id': "R2", 'region_name': "Mtwara",
        'districts': [{'district_id': "D3", 'district_name': "Nanyumbu District Council"}],
    }]


# --- PMP client ---
def _response(status_code=200, payload=None, error=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if error is not None:
        response.raise_for_status.side_effect = error
    return response


WHITELIST = [
    {'email': "dmo@arusha.go.tz", 'active': True, 'regions': ["Arusha"]},
    {'email': "former@mtwara.go.tz", 'active': False, 'regions': ["Mtwara"]},
    {'email': "admin@moh.go.tz"},
]


@pytest.fixture
def mock_http():
    http = MagicMock()
    http.post.return_value = _response(payload={'access_token': "access-1", 'refresh_token': "refresh-1"})
    http.get.return_value = _response(payload=WHITELIST)
    return http


@pytest.fixture
def pmp_client(mock_http):
    return PMPAccessClient(base_url="http://pmp.test/", username="svc", password="secret", timeout=5, http=mock_http)


def test_authenticate_returns_session(pmp_client, mock_http):
    session = pmp_client.authenticate()
    assert session.access_token == "access-1"
    assert session.refresh_token == "refresh-1"
    assert not session.is_expired()
    url = mock_http.post.call_args[0][0]
    assert url == "http://pmp.test/api/v1/security/login"
    assert mock_http.post.call_args[1]['json'] == {'password': "secret", 'provider': "db", 'refresh': True, 'username': "svc"}


def test_authenticate_failure_raises(pmp_client, mock_http):
    mock_http.post.return_value = _response(status_code=500, error=requests.HTTPError("500 Server Error"))
    with pytest.raises(AccessProviderError):
        pmp_client.authenticate()


def test_refresh_keeps_refresh_token(pmp_client, mock_http):
    session = AccessSession("old", "refresh-1")
    mock_http.post.return_value = _response(payload={'access_token': "access-2"})
    refreshed = pmp_client.refresh(session)
    assert refreshed.access_token == "access-2"
    assert refreshed.refresh_token == "refresh-1"
    assert session.access_token == "old"
    assert mock_http.post.call_args[1]['headers'] == {'Authorization': "Bearer refresh-1"}


def test_refresh_failure_falls_back_to_login(pmp_client, mock_http):
    mock_http.post.side_effect = [
        _response(status_code=401, error=requests.HTTPError("401")),
        _response(payload={'access_token': "access-3", 'refresh_token': "refresh-3"}),
    ]
    session = pmp_client.refresh(AccessSession("old", "stale"))
    assert session == AccessSession("access-3", "refresh-3", session.expires_at)


def test_expired_session_is_refreshed(pmp_client, mock_http):
    expired = AccessSession("old", "refresh-1", datetime.now(timezone.utc) - timedelta(minutes=1))
    mock_http.post.return_value = _response(payload={'access_token': "access-4"})
    assert pmp_client.ensure_session(expired).access_token == "access-4"


def test_list_allowed_regions(pmp_client, mock_http):
    regions, session = pmp_client.list_allowed_regions(None, " DMO@arusha.go.tz")
    assert regions == ["Arusha"]
    assert session.access_token == "access-1"
    assert mock_http.get.call_args[1]['headers'] == {'Authorization': "Bearer access-1"}
    # An active entry without regions is unrestricted.
    assert pmp_client.list_allowed_regions(session, "admin@moh.go.tz")[0] == []


@pytest.mark.parametrize("email", ["former@mtwara.go.tz", "stranger@example.org"])
def test_list_allowed_regions_denies_inactive_and_unknown_users(pmp_client, email):
    with pytest.raises(UserNotWhitelistedError) as excinfo:
        pmp_client.list_allowed_regions(None, email)
    assert excinfo.value.email == email


def test_whitelist_401_refreshes_once(pmp_client, mock_http):
    mock_http.get.side_effect = [_response(status_code=401), _response(payload=WHITELIST)]
    mock_http.post.return_value = _response(payload={'access_token': "access-5"})
    entries, session = pmp_client.fetch_whitelist(AccessSession("stale", "refresh-1"))
    assert session.access_token == "access-5"
    assert len(entries) == 2
    assert mock_http.get.call_count == 2


def test_is_email_whitelisted(pmp_client, mock_http):
    assert is_email_whitelisted(pmp_client, "admin@moh.go.tz") is True
    assert is_email_whitelisted(pmp_client, "former@mtwara.go.tz") is False
    mock_http.get.return_value = _response(status_code=503, error=requests.HTTPError("503"))
    assert is_email_whitelisted(pmp_client, "admin@moh.go.tz") is False
