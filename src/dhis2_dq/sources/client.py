"""DHIS2 Web API client (fetch adapter).

Thin wrapper around ``httpx.Client`` that maps transport and HTTP failures to
``FetchError`` kinds and converts payloads into package models.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from dhis2_dq.core.enums import FetchErrorKind
from dhis2_dq.core.errors import FetchError
from dhis2_dq.core.models import DatasetElements, ElementRef, RawDataValue
from dhis2_dq.validation.config import DEFAULT_FETCH_TIMEOUT
from .registry import InstanceDefinition

logger = logging.getLogger(__name__)


@dataclass
class MetadataNames:
    """Display names resolved from /api/metadata, keyed by UID."""

    data_elements: Dict[str, str] = field(default_factory=dict)
    org_units: Dict[str, str] = field(default_factory=dict)
    datasets: Dict[str, str] = field(default_factory=dict)

    def data_element(self, uid: str) -> str:
        return self.data_elements.get(uid, uid)

    def org_unit(self, uid: str) -> str:
        return self.org_units.get(uid, uid)

    def dataset(self, uid: str) -> str:
        return self.datasets.get(uid, uid)


@dataclass
class AnalyticsResult:
    values: List[RawDataValue]
    item_names: Dict[str, str] = field(default_factory=dict)


def _error_kind(status_code: int) -> FetchErrorKind:
    if status_code in (401, 403):
        return FetchErrorKind.AUTH_FAILED
    if status_code == 404:
        return FetchErrorKind.NOT_FOUND
    return FetchErrorKind.SERVER_ERROR


def _objects(payload: Dict[str, Any], key: str, source: str) -> List[Dict[str, Any]]:
    """The list of JSON objects under ``key``; a missing or null key is empty."""
    items = payload.get(key) or []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise FetchError(FetchErrorKind.SERVER_ERROR, f"{source}: '{key}' is not a list of objects")
    return items


class Dhis2Client:
    """Client for one DHIS2 instance.

    Args:
        instance: Connection settings.
        timeout: Default per-request timeout in seconds.
        transport: Optional httpx transport (e.g. ``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        instance: InstanceDefinition,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.instance = instance
        self.timeout = timeout
        self._client = httpx.Client(
            base_url=instance.base_url,
            auth=(instance.username, instance.password),
            timeout=timeout,
            follow_redirects=True,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "Dhis2Client":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # HTTP
    # ------------------------------------------------------------------ #

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        url = f"{self.instance.base_url}{path}"
        try:
            response = self._client.request(
                method,
                path,
                params=params,
                json=json,
                timeout=self.timeout if timeout is None else timeout,
            )
        except httpx.TimeoutException as e:
            raise FetchError(
                FetchErrorKind.TIMEOUT,
                f"Request to {url} timed out after {timeout or self.timeout:g} seconds",
                url=url,
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(FetchErrorKind.SERVER_ERROR, f"Request to {url} failed: {e}", url=url) from e

        if response.status_code >= 400:
            body = response.text[:500]
            raise FetchError(
                _error_kind(response.status_code),
                f"{method} {path} returned {response.status_code}: {body}",
                url=url,
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(
                FetchErrorKind.SERVER_ERROR,
                f"{method} {path} returned invalid JSON",
                url=url,
                status_code=response.status_code,
            ) from e
        if not isinstance(payload, dict):
            raise FetchError(
                FetchErrorKind.SERVER_ERROR,
                f"{method} {path} returned {type(payload).__name__} instead of a JSON object",
                url=url,
                status_code=response.status_code,
            )
        return payload

    def get_json(
        self, path: str, params: Any = None, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        return self._request("GET", path, params=params, timeout=timeout)

    # ------------------------------------------------------------------ #
    # API endpoints
    # ------------------------------------------------------------------ #

    def me(self) -> Dict[str, Any]:
        """Return the authenticated user; raises FetchError(AUTH_FAILED) on bad credentials."""
        return self.get_json("/api/me.json", params={"fields": "id,displayName,username"})

    def fetch_data_values(
        self,
        dataset_id: str,
        org_unit: str,
        period: str,
        timeout: Optional[float] = None,
    ) -> List[RawDataValue]:
        """Raw values of one dataset for one org unit and period (dataValueSets)."""
        payload = self.get_json(
            "/api/dataValueSets.json",
            params={"dataSet": dataset_id, "orgUnit": org_unit, "period": period, "paging": "false"},
            timeout=timeout,
        )
        return [RawDataValue.from_api(dv) for dv in _objects(payload, "dataValues", "dataValueSets")]

    def fetch_analytics(
        self,
        data_elements: Sequence[str],
        org_units: Sequence[str],
        period: str,
        timeout: Optional[float] = None,
    ) -> AnalyticsResult:
        """Aggregated values for the dx/ou/pe dimensions (analytics)."""
        params = [
            ("dimension", f"dx:{';'.join(data_elements)}"),
            ("dimension", f"ou:{';'.join(org_units)}"),
            ("dimension", f"pe:{period}"),
            ("skipMeta", "false"),
        ]
        payload = self.get_json("/api/analytics.json", params=params, timeout=timeout)
        return parse_analytics(payload)

    def fetch_metadata_names(
        self,
        data_elements: Sequence[str] = (),
        org_units: Sequence[str] = (),
        datasets: Sequence[str] = (),
    ) -> MetadataNames:
        params = {"fields": "id,displayName"}
        if data_elements:
            params["dataElements:filter"] = f"id:in:[{','.join(data_elements)}]"
        if org_units:
            params["organisationUnits:filter"] = f"id:in:[{','.join(org_units)}]"
        if datasets:
            params["dataSets:filter"] = f"id:in:[{','.join(datasets)}]"
        payload = self.get_json("/api/metadata.json", params=params)

        def _names(key: str) -> Dict[str, str]:
            return {
                item["id"]: item.get("displayName") or item["id"]
                for item in _objects(payload, key, "metadata")
                if item.get("id")
            }

        return MetadataNames(
            data_elements=_names("dataElements"),
            org_units=_names("organisationUnits"),
            datasets=_names("dataSets"),
        )

    def fetch_org_unit_name(self, org_unit: str) -> Optional[str]:
        payload = self.get_json(f"/api/organisationUnits/{org_unit}.json", params={"fields": "displayName"})
        return payload.get("displayName")

    def fetch_dataset_elements(self, dataset_id: str) -> DatasetElements:
        """Data elements collected by a dataset, with display and form names."""
        payload = self.get_json(
            f"/api/dataSets/{dataset_id}.json",
            params={"fields": "id,displayName,dataSetElements[dataElement[id,displayName,formName]]"},
        )
        dataset_name = str(payload.get("displayName") or dataset_id)
        elements = []
        for dse in _objects(payload, "dataSetElements", "dataSets"):
            de = dse.get("dataElement")
            if not isinstance(de, dict) or not de.get("id"):
                continue
            elements.append(
                ElementRef(
                    id=str(de["id"]),
                    display_name=str(de.get("displayName") or de["id"]),
                    dataset_id=dataset_id,
                    dataset_name=dataset_name,
                    form_name=str(de.get("formName") or ""),
                )
            )
        return DatasetElements(dataset_id=dataset_id, dataset_name=dataset_name, elements=tuple(elements))

    def post_data_values(self, values: Sequence[RawDataValue]) -> Dict[str, Any]:
        """Import data values into this instance (dataValueSets POST)."""
        return self._request(
            "POST",
            "/api/dataValueSets.json",
            json={"dataValues": [v.to_api() for v in values]},
        )


def parse_analytics(payload: Dict[str, Any]) -> AnalyticsResult:
    """Convert an analytics response into RawDataValue rows.

    Column positions come from ``headers`` when present, else dx, ou, pe, value.

    Raises:
        FetchError: (SERVER_ERROR) when rows are not lists covering those columns.
    """
    headers = [h.get("name") for h in _objects(payload, "headers", "analytics")]
    positions = {"dx": 0, "ou": 1, "pe": 2, "value": 3}
    if headers and all(k in headers for k in positions):
        positions = {k: headers.index(k) for k in positions}
    width = max(positions.values()) + 1

    rows = payload.get("rows") or []
    if not isinstance(rows, list):
        raise FetchError(FetchErrorKind.SERVER_ERROR, "analytics: 'rows' is not a list")
    values = []
    for i, row in enumerate(rows):
        if not isinstance(row, list) or len(row) < width:
            raise FetchError(
                FetchErrorKind.SERVER_ERROR,
                f"analytics: row {i} has {len(row) if isinstance(row, list) else 0} columns, expected {width}",
            )
        values.append(
            RawDataValue(
                data_element=str(row[positions["dx"]]),
                org_unit=str(row[positions["ou"]]),
                period=str(row[positions["pe"]]),
                value=str(row[positions["value"]]),
            )
        )

    meta = payload.get("metaData")
    items = meta.get("items") if isinstance(meta, dict) else None
    if not isinstance(items, dict):
        items = {}
    item_names = {uid: item.get("name", uid) for uid, item in items.items() if isinstance(item, dict)}
    return AnalyticsResult(values=values, item_names=item_names)
