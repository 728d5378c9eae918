"""Location fix providers."""

import asyncio
import json
from datetime import datetime
from typing import Callable, Optional

import httpx
import structlog

from shared_types import AccuracyClass
from tracking.models import LocationFix, SampleRequest

from .base import USER_AGENT, FixProvider, FixUnavailableError
from .retry import http_retry

logger = structlog.get_logger().bind(source="fix_provider")


def _now() -> datetime:
    return datetime.now().astimezone()


def _coordinate_fix(latitude, longitude, accuracy, captured_at: datetime, source: str) -> LocationFix:
    try:
        return LocationFix(
            latitude=float(latitude),
            longitude=float(longitude),
            captured_at=captured_at,
            horizontal_accuracy_m=-1.0 if accuracy is None else float(accuracy),
        )
    except (TypeError, ValueError) as e:
        raise FixUnavailableError(f"{source} returned a malformed coordinate: {e}") from e


def parse_termux_fix(payload: str, captured_at: datetime) -> LocationFix:
    """Parse ``termux-location`` JSON output into a LocationFix.

    A missing accuracy is stored as -1.0.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise FixUnavailableError(f"unreadable termux-location output: {e}") from e
    if not isinstance(data, dict) or data.get("latitude") is None or data.get("longitude") is None:
        raise FixUnavailableError("termux-location returned no coordinate")
    return _coordinate_fix(data["latitude"], data["longitude"], data.get("accuracy"), captured_at, "termux-location")


class TermuxFixProvider(FixProvider):
    """One-shot fix from the Termux:API ``termux-location`` command."""

    provider_name = "termux"

    LOCATION_PROVIDERS = {
        AccuracyClass.BEST: "gps",
        AccuracyClass.HUNDRED_METERS: "network",
        AccuracyClass.KILOMETER: "passive",
    }

    def __init__(self, command: str = "termux-location", clock: Optional[Callable[[], datetime]] = None):
        self.command = command
        self._clock = clock or _now
        self._process: Optional[asyncio.subprocess.Process] = None

    async def request_fix(self, request: SampleRequest) -> LocationFix:
        source = self.LOCATION_PROVIDERS.get(request.accuracy, "network")
        timeout = max(1.0, (request.deadline - self._clock()).total_seconds())
        logger.debug("termux_fix_requested", provider=source, timeout_s=round(timeout, 1))

        try:
            process = await asyncio.create_subprocess_exec(
                self.command,
                "-p",
                source,
                "-r",
                "once",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise FixUnavailableError(f"cannot run {self.command}: {e}") from e

        self._process = process
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError as e:
            raise FixUnavailableError(f"no fix within {timeout:.0f}s") from e
        finally:
            self._kill(process)
            self._process = None

        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip() or f"exit code {process.returncode}"
            raise FixUnavailableError(f"{self.command} failed: {message}")
        return parse_termux_fix(stdout.decode(errors="replace"), self._clock())

    def cancel(self) -> None:
        if self._process is not None:
            logger.info("termux_fix_cancelled")
            self._kill(self._process)

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass


class IPFixProvider(FixProvider):
    """Coarse fix from an IP geolocation service (ip-api.com JSON format)."""

    provider_name = "ip"

    DEFAULT_URL = "http://ip-api.com/json/?fields=status,message,lat,lon"
    # City-level resolution at best.
    ACCURACY_M = 5000.0

    def __init__(
        self,
        url: str = DEFAULT_URL,
        timeout: float = 10.0,
        retry_policy=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport
        self._clock = clock or _now
        self._fetch = (retry_policy or http_retry())(self._fetch_once)

    async def _fetch_once(self) -> dict:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": USER_AGENT},
            transport=self.transport,
        ) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            return response.json()

    async def request_fix(self, request: SampleRequest) -> LocationFix:
        try:
            data = await self._fetch()
        except (httpx.HTTPError, ValueError) as e:
            raise FixUnavailableError(f"IP geolocation failed: {e}") from e

        if not isinstance(data, dict):
            raise FixUnavailableError(f"IP geolocation returned {type(data).__name__}, expected an object")
        if data.get("status") not in (None, "success") or data.get("lat") is None or data.get("lon") is None:
            raise FixUnavailableError(f"IP geolocation returned no coordinate: {data.get('message', 'unknown')}")
        return _coordinate_fix(data["lat"], data["lon"], self.ACCURACY_M, self._clock(), "IP geolocation")


class StaticFixProvider(FixProvider):
    """Always reports the configured coordinate; for stationary hosts."""

    provider_name = "static"

    def __init__(
        self,
        latitude: float,
        longitude: float,
        accuracy_m: float = 10.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.latitude = latitude
        self.longitude = longitude
        self.accuracy_m = accuracy_m
        self._clock = clock or _now

    async def request_fix(self, request: SampleRequest) -> LocationFix:
        return LocationFix(
            latitude=self.latitude,
            longitude=self.longitude,
            captured_at=self._clock(),
            horizontal_accuracy_m=self.accuracy_m,
        )
