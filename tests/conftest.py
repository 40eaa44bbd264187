"""Shared fixtures: an in-memory stand-in for the stack's REST APIs."""

from collections import defaultdict
from pathlib import Path

import pytest
import requests

from stack_settings import RetryPolicy, ServiceEndpoint, StackSettings

RADARR = "http://localhost:7878"
SONARR = "http://localhost:8989"
PROWLARR = "http://localhost:9696"
QBT = "http://localhost:8080"
OVERSEERR = "http://localhost:5055"

RADARR_KEY = "abcd1234abcd1234abcd1234abcd1234"
SONARR_KEY = "bbbb2222bbbb2222bbbb2222bbbb2222"
PROWLARR_KEY = "cccc3333cccc3333cccc3333cccc3333"
OVERSEERR_KEY = "b3ZlcnNlZXJyLWtleQ=="


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else ("" if body is None else str(body))

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeStack:
    """
    GET on a known collection URL lists it; POST appends with a fresh id.
    `responses[(method, url)]` overrides a route; `down` holds base URLs that refuse connections.
    """

    def __init__(self):
        self.collections = defaultdict(list)
        self.responses = {}
        self.down = set()
        self.calls = []
        self._next_id = 1

    def seed(self, url, items):
        self.collections[url] = [dict(i) for i in items]

    def posts(self, url):
        return [c for c in self.calls if c[0] == "POST" and c[1] == url]

    def _refuse(self, url):
        if any(url.startswith(base) for base in self.down):
            raise requests.ConnectionError(f"connection refused: {url}")

    def _override(self, method, url, payload=None):
        resp = self.responses.get((method, url))
        if callable(resp):
            return resp(payload)
        return resp

    def get(self, url, headers=None, timeout=None, **kwargs):
        self.calls.append(("GET", url, None))
        self._refuse(url)
        resp = self._override("GET", url)
        if resp is not None:
            return resp
        if url in self.collections:
            return FakeResponse(200, [dict(i) for i in self.collections[url]])
        return FakeResponse(404, text="Not Found")

    def post(self, url, headers=None, json=None, timeout=None, **kwargs):
        self.calls.append(("POST", url, json))
        self._refuse(url)
        resp = self._override("POST", url, json)
        if resp is not None:
            return resp
        if url in self.collections:
            item = dict(json or {})
            item["id"] = self._next_id
            self._next_id += 1
            self.collections[url].append(item)
            return FakeResponse(201, item)
        return FakeResponse(404, text="Not Found")

    def put(self, url, headers=None, json=None, timeout=None, **kwargs):
        self.calls.append(("PUT", url, json))
        self._refuse(url)
        return self._override("PUT", url, json) or FakeResponse(404, text="Not Found")


def seed_empty_stack(stack: FakeStack):
    for base in (RADARR, SONARR):
        stack.seed(f"{base}/api/v3/downloadclient", [])
        stack.seed(f"{base}/api/v3/rootfolder", [])
        stack.seed(f"{base}/api/v3/indexer", [])
        stack.seed(f"{base}/api/v3/qualityprofile", [{"id": 4, "name": "HD-1080p"}, {"id": 6, "name": "Any"}])
        stack.responses[("GET", f"{base}/api/v3/system/status")] = FakeResponse(200, {"version": "5"})
    stack.seed(f"{PROWLARR}/api/v1/applications", [])
    stack.seed(f"{PROWLARR}/api/v1/indexer", [])
    stack.seed(f"{PROWLARR}/api/v1/command", [])
    stack.responses[("GET", f"{PROWLARR}/api/v1/system/status")] = FakeResponse(401, text="Unauthorized")
    stack.responses[("GET", f"{QBT}/")] = FakeResponse(200, text="<html>")
    stack.responses[("GET", f"{OVERSEERR}/api/v1/status")] = FakeResponse(200, {"version": "1.33"})
    stack.responses[("GET", f"{OVERSEERR}/api/v1/settings/public")] = FakeResponse(200, {"initialized": False})
    stack.seed(f"{OVERSEERR}/api/v1/settings/radarr", [])
    stack.seed(f"{OVERSEERR}/api/v1/settings/sonarr", [])


@pytest.fixture
def stack(monkeypatch):
    fake = FakeStack()
    monkeypatch.setattr(requests, "get", fake.get)
    monkeypatch.setattr(requests, "post", fake.post)
    monkeypatch.setattr(requests, "put", fake.put)
    return fake


@pytest.fixture
def wired_stack(stack):
    seed_empty_stack(stack)
    return stack


def write_arr_config(root: Path, service: str, api_key: str, port: int | None = None):
    d = Path(root) / service
    d.mkdir(parents=True, exist_ok=True)
    port_el = f"  <Port>{port}</Port>\n" if port else ""
    (d / "config.xml").write_text(
        "<Config>\n"
        "  <BindAddress>*</BindAddress>\n"
        f"{port_el}"
        f"  <ApiKey>{api_key}</ApiKey>\n"
        "  <AuthenticationMethod>None</AuthenticationMethod>\n"
        "</Config>\n",
        encoding="utf-8",
    )


def write_overseerr_settings(root: Path, api_key: str):
    import json

    d = Path(root) / "overseerr"
    d.mkdir(parents=True, exist_ok=True)
    (d / "settings.json").write_text(json.dumps({"main": {"apiKey": api_key}, "public": {"initialized": False}}))


@pytest.fixture
def config_root(tmp_path):
    root = tmp_path / "configs"
    write_arr_config(root, "radarr", RADARR_KEY)
    write_arr_config(root, "sonarr", SONARR_KEY)
    write_arr_config(root, "prowlarr", PROWLARR_KEY)
    return root


def make_settings(config_root, **kwargs) -> StackSettings:
    endpoints = {
        "radarr": ServiceEndpoint("radarr", RADARR, "radarr", 7878),
        "sonarr": ServiceEndpoint("sonarr", SONARR, "sonarr", 8989),
        "prowlarr": ServiceEndpoint("prowlarr", PROWLARR, "prowlarr", 9696),
        "qbittorrent": ServiceEndpoint("qbittorrent", QBT, "qbittorrent", 8080),
        "overseerr": ServiceEndpoint("overseerr", OVERSEERR, "overseerr", 5055),
    }
    defaults = dict(
        config_root=Path(config_root),
        endpoints=endpoints,
        retry=RetryPolicy(max_attempts=3, interval=0),
        qb_log_retry_delay=0,
        sync_grace=0,
    )
    defaults.update(kwargs)
    return StackSettings(**defaults)


@pytest.fixture
def settings(config_root):
    return make_settings(config_root)


@pytest.fixture
def no_sleep():
    calls = []
    return calls.append, calls
