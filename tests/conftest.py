import base64
import contextlib
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from p1doks_cli.api.client import P1doksAPIClient
from p1doks_cli.api.session import CredentialTriple, SessionManager
from p1doks_cli.exceptions import IdentityProviderError


def make_jwt(claims):
    """Builds an unsigned three-segment token carrying the given claims."""

    def _segment(data):
        raw = json.dumps(data).encode("utf-8")
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    return f"{_segment({'alg': 'none'})}.{_segment(claims)}.signature"


class FakeIdentityProvider:
    """Issues numbered credentials and records every exchange."""

    def __init__(self, password="correct-horse", fail_refresh=False, subject="user-123"):
        self.password = password
        self.fail_refresh = fail_refresh
        self.subject = subject
        self.password_calls = []
        self.refresh_calls = []
        self.issued = 0

    def _issue(self):
        self.issued += 1
        return CredentialTriple(
            access_token=f"access-{self.issued}",
            id_token=make_jwt({"sub": self.subject, "n": self.issued}),
            refresh_token=f"refresh-{self.issued}",
        )

    async def authenticate(self, username, password):
        self.password_calls.append(username)
        if password != self.password:
            raise IdentityProviderError(
                "Authentication failed: Incorrect username or password.",
                error_type="NotAuthorizedException",
                status=400,
            )
        return self._issue()

    async def refresh(self, username, refresh_token):
        self.refresh_calls.append(refresh_token)
        if self.fail_refresh:
            raise IdentityProviderError(
                "Authentication failed: Refresh Token has expired",
                error_type="NotAuthorizedException",
                status=400,
            )
        return self._issue()


@pytest.fixture
def provider():
    return FakeIdentityProvider()


PACKS = [
    {
        "id": 1,
        "Car": "BMW M4 GT3",
        "Series": "GT Sprint",
        "Track": "Spa-Francorchamps",
        "price": 0,
        "lap_time_formatted": "2:17.123",
        "creator": "Alice",
        "Week": "3",
        "Season": "4",
        "Year": "2025",
    },
    {
        "id": 2,
        "Car": "Ford Mustang GT3",
        "Series": "GT Sprint",
        "Track": "Spa-Francorchamps",
        "price": 15,
        "stripe_product_id": "prod_ABC",
    },
    {
        "id": 3,
        "Car": "Porsche 911 GT3 Cup (992)",
        "Series": "Porsche Cup",
        "Track": "Monza",
        "price": 15,
        "stripe_product_id": "",
    },
    {"id": 4, "Car": "Toyota GR86", "Series": "GR86 Cup", "Track": "Lime Rock", "price": 0},
]

PACK_FILES = {
    "1": [
        {"type": "dry_files", "filename_download": "spa_dry.sto", "filename_disk": "d1.sto", "title": "Dry"},
        {"type": "wet_files", "filename_download": "spa_wet.sto", "filename_disk": "w1.sto", "title": "Wet"},
        {"type": "telemetry", "filename_download": "lap.ibt", "filename_disk": "t1.ibt"},
    ],
    "2": [
        {"type": "dry_files", "filename_download": "../evil/mustang.sto", "filename_disk": "d2.sto"},
    ],
    "4": [],
}


class FakeP1doks:
    """A P1Doks API stand-in that accepts any bearer token."""

    def __init__(self):
        self.listing_queries = []
        self.file_requests = []
        self.failing_series = set()
        self.missing_files = set()
        self.rate_limited = False
        self.reject_all = False

    def _authorized(self, request):
        return not self.reject_all and request.headers.get("Authorization", "").startswith(
            "Bearer "
        )

    async def data_packs(self, request):
        if not self._authorized(request):
            return web.json_response({}, status=401)
        body = await request.json()
        self.listing_queries.append(body)
        series = body["filters"].get("Series", {}).get("_eq")
        if series in self.failing_series:
            return web.json_response({"message": "boom"}, status=500)
        packs = [p for p in PACKS if series is None or p["Series"] == series]
        return web.json_response({"data_pack": packs})

    async def pack_files(self, request):
        if not self._authorized(request):
            return web.json_response({}, status=401)
        return web.json_response({"files": PACK_FILES.get(request.match_info["id"], [])})

    async def signed_url(self, request):
        if not self._authorized(request):
            return web.json_response({}, status=401)
        if self.rate_limited:
            return web.json_response({}, status=429)
        body = await request.json()
        url = request.url.origin().with_path(f"/s3/{body['filename_disk']}")
        return web.json_response({"url": str(url)})

    async def s3_object(self, request):
        name = request.match_info["name"]
        self.file_requests.append((name, request.headers.get("Authorization")))
        if name in self.missing_files:
            return web.Response(status=404)
        return web.Response(body=f"setup {name}".encode())

    def build_app(self):
        app = web.Application()
        app.router.add_post("/ql/data-packs", self.data_packs)
        app.router.add_get("/ql/data-packs/files/consolidated/{id}", self.pack_files)
        app.router.add_post("/api/files/download/signed-url", self.signed_url)
        app.router.add_get("/s3/{name}", self.s3_object)
        return app


@contextlib.asynccontextmanager
async def p1doks_client(fake, provider=None):
    """Yields an API client signed in against a running FakeP1doks server."""
    provider = provider or FakeIdentityProvider()
    async with TestServer(fake.build_app()) as server:
        async with SessionManager(
            "driver@example.com", provider, password=provider.password
        ) as session:
            await session.authenticate()
            yield P1doksAPIClient(session, str(server.make_url("/")))


@pytest.fixture
def fake_p1doks():
    return FakeP1doks()
