"""ISSKS charging API ingress module - fetches outlet charge status via HTTP"""
import json
import logging
import math
from typing import Any

import httpx

from sources.base import ChargeStatus, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://wemp.issks.com/charge/v1/charging/outlet/"
SUCCESS_CODE = "1"


def _as_text(value: Any) -> str:
    """Render a JSON value as text, empty string when absent."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def _as_int(value: Any) -> int:
    """Coerce a JSON value to an integer, zero when absent or not numeric."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        # NaN and Infinity have no integer form
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return _as_int(float(value))
        except ValueError:
            return 0
    return 0


def _lookup(payload: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(payload, dict):
            return None
        payload = payload.get(key)
    return payload


class IssksChargeSource:
    """
    ISSKS charging outlet status source.

    Queries the public charging API for one outlet at a time. The
    caller decides pacing; this class performs no retries.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0
    ):
        """
        Initialize the charge status source.

        Args:
            base_url: URL prefix the outlet id is appended to
            timeout: HTTP request timeout in seconds (default: 10.0)
        """
        self.base_url = base_url
        self.timeout = timeout
        self.client = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self) -> None:
        """Create the persistent HTTP client with keep-alive."""
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=httpx.Limits(max_keepalive_connections=1)
            )
            logger.info(f"ISSKS: Client ready for {self.base_url}")

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
            logger.info("ISSKS: Client closed")

    async def query(self, outlet_id: str) -> ChargeStatus:
        """
        Fetch the charge status of one outlet.

        Raises:
            UpstreamError: on transport failure, a non-200 status, a body
                that is not JSON, or a payload code other than "1".
        """
        if self.client is None:
            await self.connect()

        url = f"{self.base_url}{outlet_id}"
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            raise UpstreamError(f"request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(
                f"request failed with status code: {response.status_code} {response.reason_phrase}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError(f"response is not valid JSON: {e}") from e

        code = _as_text(_lookup(body, "code"))
        if code != SUCCESS_CODE:
            raise UpstreamError(f"unexpected response code: {code}")

        power = _as_text(_lookup(body, "data", "powerFee", "billingPower"))
        used_minutes = _as_int(_lookup(body, "data", "usedmin"))
        logger.debug(f"ISSKS: Outlet {outlet_id}: power={power!r} used_minutes={used_minutes}")

        return ChargeStatus(power=power, used_minutes=used_minutes)
