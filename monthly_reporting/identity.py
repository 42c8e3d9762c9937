# monthly_reporting_core/monthly_reporting/identity.py
# De-duplicated region, district and facility identities derived from a snapshot.

import logging
from dataclasses import dataclass
from functools import cached_property, lru_cache
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .snapshot_cache import Snapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionIdentity:
    region_id: str
    region_name: str


@dataclass(frozen=True)
class RegionDistrictIdentity:
    region_id: str
    region_name: str
    district_id: str
    district_name: str


@dataclass(frozen=True)
class FacilityInfo:
    facility_id: str
    facility_name: str
    region_id: str
    region_name: str
    district_id: str
    district_name: str
    unique_patients: int
    vaccine_vial_stock: int


class IdentityResolver:
    """
    Read-only ID/name derivations over one snapshot.

    Every listing is a single first-seen-order pass (drop_duplicates keeps the first
    occurrence) and is computed at most once per resolver. Identifiers are authoritative:
    blank IDs are left out of the listings because they cannot be addressed by callers.
    """

    def __init__(self, snapshot: Snapshot):
        self.snapshot = snapshot
        self._records = snapshot.records

    @cached_property
    def regions(self) -> pd.DataFrame:
        df = self._records[['region_id', 'region_name']]
        return df[df['region_id'] != ''].drop_duplicates('region_id').reset_index(drop=True)

    @cached_property
    def districts(self) -> pd.DataFrame:
        df = self._records[['region_id', 'region_name', 'district_id', 'district_name']]
        df = df[(df['region_id'] != '') & (df['district_id'] != '')]
        return df.drop_duplicates(['region_id', 'district_id']).reset_index(drop=True)

    @cached_property
    def facility_directory(self) -> pd.DataFrame:
        """One row per facility (first-seen) with the region and district it belongs to."""
        cols = ['facility_id', 'facility_name', 'region_id', 'region_name', 'district_id', 'district_name']
        df = self._records[cols]
        return df[df['facility_id'] != ''].drop_duplicates('facility_id').reset_index(drop=True)

    @cached_property
    def region_names(self) -> Dict[str, str]:
        return dict(zip(self.regions['region_id'], self.regions['region_name']))

    @cached_property
    def district_names(self) -> Dict[str, str]:
        return dict(zip(self.districts['district_id'], self.districts['district_name']))

    @cached_property
    def facility_names(self) -> Dict[str, str]:
        return dict(zip(self.facility_directory['facility_id'], self.facility_directory['facility_name']))

    def has_region(self, region_id: Optional[str]) -> bool:
        return region_id in self.region_names

    def has_district(self, region_id: Optional[str], district_id: Optional[str]) -> bool:
        if not self.has_region(region_id):
            return False
        districts = self.districts
        return bool(((districts['region_id'] == region_id) & (districts['district_id'] == district_id)).any())

    def owning_region_ids(self, district_ids: Iterable[str]) -> List[str]:
        """Region IDs the given districts belong to; unknown districts contribute nothing."""
        wanted = set(district_ids or [])
        districts = self.districts
        return districts.loc[districts['district_id'].isin(wanted), 'region_id'].drop_duplicates().tolist()

    def unique_regions(self) -> List[RegionIdentity]:
        return [RegionIdentity(row.region_id, row.region_name) for row in self.regions.itertuples(index=False)]

    def unique_districts(self, region_name: str) -> List[RegionDistrictIdentity]:
        """Districts of the region with this name, first-seen order, de-duplicated by district ID."""
        df = self.districts[self.districts['region_name'] == region_name]
        df = df.drop_duplicates('district_id')
        return [RegionDistrictIdentity(r.region_id, r.region_name, r.district_id, r.district_name) for r in df.itertuples(index=False)]

    @cached_property
    def _region_district_pairs(self) -> List[RegionDistrictIdentity]:
        df = self._records[['region_id', 'region_name', 'district_id', 'district_name']].copy()
        df['region_name'] = df['region_name'].str.strip()
        df['district_name'] = df['district_name'].str.strip()
        df = df[(df['region_name'] != '') & (df['district_name'] != '')]
        df = df.drop_duplicates(['region_id', 'district_id'])
        logger.debug(f"(IdentityResolver) {len(df)} region/district pairs from {len(self._records)} records.")
        return [RegionDistrictIdentity(r.region_id, r.region_name, r.district_id, r.district_name) for r in df.itertuples(index=False)]

    def region_district_pairs(self) -> List[RegionDistrictIdentity]:
        """Every displayable (region, district) identity in the snapshot; rows with a blank region or district name are skipped."""
        return list(self._region_district_pairs)

    def facility_ids(self, region_name: Optional[str] = None, district_name: Optional[str] = None) -> List[str]:
        df = self.facility_directory
        if region_name is not None:
            df = df[df['region_name'] == region_name]
        if district_name is not None:
            df = df[df['district_name'] == district_name]
        return df['facility_id'].tolist()

    def facility_by_id(self, facility_id: str) -> Optional[FacilityInfo]:
        """
        Facility details from its most recent record (by submission date).

        Returns None when the facility does not appear in the snapshot or the ID is blank.
        """
        if not facility_id or not str(facility_id).strip():
            return None
        rows = self._records[self._records['facility_id'] == facility_id]
        if rows.empty:
            return None
        latest = rows.sort_values('submission_date', ascending=False, kind='mergesort').iloc[0]
        return FacilityInfo(
            facility_id=latest['facility_id'],
            facility_name=latest['facility_name'],
            region_id=latest['region_id'],
            region_name=latest['region_name'],
            district_id=latest['district_id'],
            district_name=latest['district_name'],
            unique_patients=int(latest['total_patients']),
            vaccine_vial_stock=int(latest['total_vials']),
        )


@lru_cache(maxsize=4)
def get_identity_resolver(snapshot: Snapshot) -> IdentityResolver:
    """Resolver memoized per snapshot instance; a refreshed snapshot gets a fresh resolver."""
    return IdentityResolver(snapshot)
