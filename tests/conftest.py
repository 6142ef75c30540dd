from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


from hybrid_address_search.base import Transport
from hybrid_address_search.config import EngineConfig
from hybrid_address_search.engine import AddressSearchEngine
from hybrid_address_search.errors import ProviderFetchError
from hybrid_address_search.throttling import NoOpRateLimiter


BAYERN_HOST = "geoservices.bayern.de"
OPENPLZ_HOST = "openplzapi.org"
NOMINATIM_HOST = "nominatim.openstreetmap.org"


@dataclass
class Call:
    url: str
    params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None


class FakeTransport(Transport):
    """
    Scripted transport.

    `routes` maps a URL fragment to a payload, an exception instance, or a
    callable `(url, params) -> payload` that may itself raise. `delay`
    returns seconds to wait before answering a request.
    """

    def __init__(
        self,
        routes: Optional[dict[str, Any]] = None,
        delay: Optional[Callable[[str, dict[str, Any]], float]] = None,
    ):
        self.routes = dict(routes or {})
        self.delay = delay
        self.calls: list[Call] = []
        self.closed = False

    def calls_to(self, fragment: str) -> list[Call]:
        return [c for c in self.calls if fragment in c.url]

    async def get_json(self, url, params=None, headers=None, timeout=None):
        params = dict(params or {})
        self.calls.append(Call(url, params, dict(headers or {}), timeout))
        if self.delay is not None:
            seconds = self.delay(url, params)
            if seconds:
                await asyncio.sleep(seconds)

        for fragment, response in self.routes.items():
            if fragment in url:
                if callable(response):
                    response = response(url, params)
                if isinstance(response, BaseException):
                    raise response
                return response
        raise ProviderFetchError(url, "no route", http_status=404, error_label="http_404")

    async def aclose(self) -> None:
        self.closed = True


class FakeClock:
    """Simulated monotonic clock; `sleep` advances time instead of waiting."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def bayern_payload(*labels: str) -> dict[str, Any]:
    return {"results": [{"attrs": {"label": label}} for label in labels]}


def openplz_streets(postal_code: str, locality: str, *names: str) -> list[dict[str, Any]]:
    return [{"name": n, "postalCode": postal_code, "locality": locality} for n in names]


def nominatim_item(road: str, house_number: str, postcode: str, city: str, **extra: Any) -> dict[str, Any]:
    item = {
        "display_name": f"{road} {house_number}, {postcode} {city}, Deutschland",
        "address": {"road": road, "house_number": house_number, "postcode": postcode, "city": city},
        "lat": "48.137",
        "lon": "11.575",
        "osm_type": "node",
        "osm_id": 123,
    }
    item.update(extra)
    return item


@pytest.fixture
def default_routes() -> dict[str, Any]:
    return {
        BAYERN_HOST: bayern_payload(
            "<b>Marienplatz</b> 1, 80331 München",
            "<b>Herrenstraße</b> 5, 80331 München",
        ),
        OPENPLZ_HOST: openplz_streets("80331", "München", "Marienplatz", "Sendlinger Straße"),
        NOMINATIM_HOST: [nominatim_item("Marienplatz", "1", "80331", "München")],
    }


@pytest.fixture
def transport(default_routes) -> FakeTransport:
    return FakeTransport(default_routes)


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def engine(config, transport) -> AddressSearchEngine:
    return AddressSearchEngine(config, transport=transport, rate_limiter=NoOpRateLimiter())
