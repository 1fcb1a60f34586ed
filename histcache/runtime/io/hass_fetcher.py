from __future__ import annotations

"""Home Assistant history sources.

:class:`HassStatesFetcher` reads recorder state history over the REST API and
:class:`HassStatisticsFetcher` reads long-term statistics over the WebSocket
API (statistics have no REST endpoint). Both return DataFrames with a ``ts``
column in epoch milliseconds and a ``value`` column.
"""

import asyncio
import json
import logging
from typing import Any, Callable

import httpx
import pandas as pd
import websockets

from histcache.foundation.config import HassConfig
from histcache.runtime.sdk.exceptions import HassAPIError
from histcache.runtime.sdk.series import AttributeSeries, StateSeries, StatisticSeries

logger = logging.getLogger(__name__)

_EPOCH = pd.Timestamp(0, tz="UTC")
_COLUMNS = ["ts", "value"]


def ms_to_iso(ms: int) -> str:
    return pd.Timestamp(int(ms), unit="ms", tz="UTC").isoformat()


def iso_to_ms(values: pd.Series) -> pd.Series:
    stamps = pd.to_datetime(values, utc=True, format="ISO8601")
    return (stamps - _EPOCH) // pd.Timedelta(milliseconds=1)


def _empty_frame() -> pd.DataFrame:
    return pd.DataFrame(columns=_COLUMNS)


class HassStatesFetcher:
    """Fetch state or attribute history from ``/api/history/period``."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        significant_changes_only: bool = False,
        minimal_response: bool = True,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.significant_changes_only = significant_changes_only
        self.minimal_response = minimal_response
        self.timeout = timeout
        self._transport = transport

    def _params(self, end: int, series: StateSeries | AttributeSeries) -> dict[str, str]:
        params = {
            "filter_entity_id": series.entity,
            "end_time": ms_to_iso(end),
            "significant_changes_only": "1" if self.significant_changes_only else "0",
        }
        # Attribute series need every row's attributes.
        if isinstance(series, StateSeries):
            params["no_attributes"] = ""
            if self.minimal_response:
                params["minimal_response"] = ""
        return params

    async def fetch(
        self, start: int, end: int, *, series: StateSeries | AttributeSeries
    ) -> pd.DataFrame:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.get(
                f"/api/history/period/{ms_to_iso(start)}",
                params=self._params(end, series),
            )
            response.raise_for_status()
            payload = response.json()

        rows = payload[0] if payload else []
        return self._to_frame(rows, series)

    @staticmethod
    def _to_frame(
        rows: list[dict[str, Any]], series: StateSeries | AttributeSeries
    ) -> pd.DataFrame:
        if not rows:
            return _empty_frame()
        df = pd.DataFrame(rows)
        if isinstance(series, AttributeSeries):
            primary, fallback = "last_updated", "last_changed"
        else:
            primary, fallback = "last_changed", "last_updated"
        if primary not in df.columns:
            df[primary] = None
        if fallback in df.columns:
            df[primary] = df[primary].fillna(df[fallback])

        if isinstance(series, AttributeSeries):
            # Rows without the attribute stay as None so the carried-forward
            # row at the window's left edge is never lost.
            attrs = df["attributes"] if "attributes" in df.columns else [None] * len(df)
            values = pd.Series(
                [a.get(series.attribute) if isinstance(a, dict) else None for a in attrs],
                dtype=object,
            )
        else:
            values = df["state"]

        frame = pd.DataFrame(
            {"ts": iso_to_ms(df[primary]).to_numpy(), "value": values.to_numpy()}
        )
        return frame.sort_values("ts", kind="stable").reset_index(drop=True)


class HassStatisticsFetcher:
    """Fetch long-term statistics via ``recorder/statistics_during_period``."""

    def __init__(
        self,
        ws_url: str,
        token: str | None = None,
        *,
        timeout: float = 10.0,
        connect: Callable[..., Any] | None = None,
    ) -> None:
        self.ws_url = ws_url
        self.token = token
        self.timeout = timeout
        self._connect = connect or websockets.connect
        self._message_id = 0

    async def _recv(self, ws) -> dict[str, Any]:
        raw = await asyncio.wait_for(ws.recv(), timeout=self.timeout)
        return json.loads(raw)

    async def _authenticate(self, ws) -> None:
        hello = await self._recv(ws)
        if hello.get("type") != "auth_required":
            return
        await ws.send(json.dumps({"type": "auth", "access_token": self.token}))
        reply = await self._recv(ws)
        if reply.get("type") != "auth_ok":
            raise HassAPIError(f"authentication failed: {reply.get('message', reply)}")

    async def fetch(
        self, start: int, end: int, *, series: StatisticSeries
    ) -> pd.DataFrame:
        self._message_id += 1
        message_id = self._message_id
        request = {
            "id": message_id,
            "type": "recorder/statistics_during_period",
            "start_time": ms_to_iso(start),
            "end_time": ms_to_iso(end),
            "statistic_ids": [series.entity],
            "period": series.period,
            "types": [series.statistic],
        }
        async with self._connect(self.ws_url, open_timeout=self.timeout) as ws:
            await self._authenticate(ws)
            await ws.send(json.dumps(request))
            while True:
                reply = await self._recv(ws)
                if reply.get("id") == message_id and reply.get("type") == "result":
                    break
                logger.debug("ignoring websocket message %s", reply.get("type"))

        if not reply.get("success", False):
            error = reply.get("error") or {}
            raise HassAPIError(
                f"statistics request failed: {error.get('code')} {error.get('message')}"
            )
        rows = (reply.get("result") or {}).get(series.entity, [])
        return self._to_frame(rows, series)

    @staticmethod
    def _to_frame(rows: list[dict[str, Any]], series: StatisticSeries) -> pd.DataFrame:
        if not rows:
            return _empty_frame()
        df = pd.DataFrame(rows)
        if series.statistic not in df.columns:
            return _empty_frame()
        starts = df["start"]
        if pd.api.types.is_numeric_dtype(starts):
            ts = starts.astype("int64")
        else:
            ts = iso_to_ms(starts)
        frame = pd.DataFrame(
            {"ts": ts.to_numpy(), "value": df[series.statistic].to_numpy()}
        )
        return frame.sort_values("ts", kind="stable").reset_index(drop=True)


def build_fetchers(
    config: HassConfig | None = None,
) -> tuple[HassStatesFetcher, HassStatisticsFetcher]:
    """Create both Home Assistant fetchers from ``config``."""

    if config is None:
        from histcache.runtime.sdk.configuration import get_hass_config

        config = get_hass_config()
    states = HassStatesFetcher(
        config.base_url,
        config.token,
        significant_changes_only=config.significant_changes_only,
        minimal_response=config.minimal_response,
        timeout=config.request_timeout_seconds,
    )
    statistics = HassStatisticsFetcher(
        config.websocket_url,
        config.token,
        timeout=config.request_timeout_seconds,
    )
    return states, statistics


__all__ = [
    "HassStatesFetcher",
    "HassStatisticsFetcher",
    "build_fetchers",
    "iso_to_ms",
    "ms_to_iso",
]
