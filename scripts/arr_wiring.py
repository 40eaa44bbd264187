import re
from dataclasses import dataclass

import requests

from results import EdgeKind, Status, StepResult, WiringEdge, report
from stack_settings import ServiceEndpoint

REQ_TIMEOUT = 10

# Newznab/Torznab category codes pushed from Prowlarr to each app
MOVIE_SYNC_CATEGORIES = [2000, 2010, 2020, 2030, 2040, 2045, 2050, 2060, 2070, 2080]
TV_SYNC_CATEGORIES = [5000, 5010, 5020, 5030, 5040, 5045, 5050, 5060, 5070, 5080]

SYNC_CATEGORIES = {"radarr": MOVIE_SYNC_CATEGORIES, "sonarr": TV_SYNC_CATEGORIES}

# field prefix + qBittorrent category per arr
DOWNLOAD_CATEGORY = {
    "radarr": ("movie", "Movie", "radarr"),
    "sonarr": ("tv", "Tv", "sonarr"),
}

DOWNLOAD_CLIENT_NAME = "qBittorrent"


@dataclass(frozen=True)
class IndexerDefinition:
    name: str
    base_url: str
    definition_id: str
    implementation_name: str = ""

    def payload(self) -> dict:
        return {
            "enable": True,
            "redirect": False,
            "name": self.name,
            "fields": [
                {"name": "baseUrl", "value": self.base_url},
                {"name": "baseSettings.limitsUnit", "value": 0},
            ],
            "implementationName": self.implementation_name or self.name,
            "implementation": "Cardigann",
            "configContract": "CardigannSettings",
            "definitionName": self.definition_id,
            "tags": [],
            "priority": 25,
            "appProfileId": 1,
        }


# Some of these are geo-blocked or behind Cloudflare in places; Prowlarr then rejects them
PUBLIC_INDEXERS = (
    IndexerDefinition("YTS", "https://yts.mx", "yts"),
    IndexerDefinition("The Pirate Bay", "https://thepiratebay.org", "thepiratebay"),
    IndexerDefinition("TorrentGalaxy", "https://torrentgalaxy.to", "torrentgalaxy"),
    IndexerDefinition("Nyaa", "https://nyaa.si", "nyaasi", "Nyaa.si"),
    IndexerDefinition("LimeTorrents", "https://www.limetorrents.lol", "limetorrents"),
)


def _headers(api_key: str) -> dict:
    return {"X-Api-Key": api_key, "Content-Type": "application/json"}


def _norm(s: str) -> str:
    return re.sub(r'\W+', '', (s or '').lower())


def _list(url: str, api_key: str, timeout: float = REQ_TIMEOUT) -> list:
    r = requests.get(url, headers=_headers(api_key), timeout=timeout)
    r.raise_for_status()
    return r.json() or []


def _created_id(r: requests.Response):
    try:
        body = r.json()
    except ValueError:
        return None
    return body.get("id") if isinstance(body, dict) else None


def download_client_payload(arr_name: str, host: str, port: int, username: str, password: str) -> dict:
    prefix, cap, category = DOWNLOAD_CATEGORY[arr_name]
    return {
        "enable": True,
        "protocol": "torrent",
        "priority": 1,
        "removeCompletedDownloads": True,
        "removeFailedDownloads": True,
        "name": DOWNLOAD_CLIENT_NAME,
        "fields": [
            {"name": "host", "value": host},
            {"name": "port", "value": port},
            {"name": "useSsl", "value": False},
            {"name": "urlBase", "value": ""},
            {"name": "username", "value": username or ""},
            {"name": "password", "value": password or ""},
            {"name": f"{prefix}Category", "value": category},
            {"name": f"{prefix}ImportedCategory", "value": ""},
            {"name": f"recent{cap}Priority", "value": 0},
            {"name": f"older{cap}Priority", "value": 0},
            {"name": "initialState", "value": 0},
            {"name": "sequentialOrder", "value": False},
            {"name": "firstAndLast", "value": False},
        ],
        "implementationName": "qBittorrent",
        "implementation": "QBittorrent",
        "configContract": "QBittorrentSettings",
        "tags": [],
    }


def ensure_download_client(arr: ServiceEndpoint, api_key: str, qbt: ServiceEndpoint,
                           username: str, password: str, timeout: float = REQ_TIMEOUT) -> StepResult:
    """Register qBittorrent as a download client in Radarr/Sonarr (category fixed per app)."""
    step = f"{DOWNLOAD_CLIENT_NAME} -> {arr.display_name}"
    edge = WiringEdge(qbt.name, arr.name, EdgeKind.DOWNLOAD_CLIENT,
                      {"category": DOWNLOAD_CATEGORY[arr.name][2]})
    url = f"{arr.base_url}/api/v3/downloadclient"
    try:
        existing = _list(url, api_key, timeout)
    except (requests.RequestException, ValueError) as e:
        return report(StepResult(step, Status.FAILED, f"could not list download clients: {e}", edge))

    for cli in existing:
        if _norm(cli.get("name")) == _norm(DOWNLOAD_CLIENT_NAME) or cli.get("implementation") == "QBittorrent":
            return report(StepResult(step, Status.EXISTS, f"already present (id={cli.get('id')})", edge))

    payload = download_client_payload(arr.name, qbt.internal_hostname, qbt.port, username, password)
    try:
        r = requests.post(url, headers=_headers(api_key), json=payload, timeout=timeout)
    except requests.RequestException as e:
        return report(StepResult(step, Status.FAILED, str(e), edge))
    if r.status_code in (200, 201):
        return report(StepResult(step, Status.CREATED, f"id={_created_id(r)}", edge))
    if r.status_code == 409:
        return report(StepResult(step, Status.EXISTS, "already exists", edge))
    return report(StepResult(step, Status.FAILED, f"{r.status_code} {r.text[:200]}", edge))


def ensure_root_folder(arr: ServiceEndpoint, api_key: str, path: str,
                       timeout: float = REQ_TIMEOUT) -> StepResult:
    step = f"Root folder {path} -> {arr.display_name}"
    edge = WiringEdge(arr.name, arr.name, EdgeKind.ROOT_FOLDER, {"path": path})
    url = f"{arr.base_url}/api/v3/rootfolder"
    try:
        existing = _list(url, api_key, timeout)
    except (requests.RequestException, ValueError) as e:
        return report(StepResult(step, Status.FAILED, f"could not list root folders: {e}", edge))

    for rf in existing:
        if (rf.get("path") or "").rstrip("/") == path.rstrip("/"):
            return report(StepResult(step, Status.EXISTS, "already present", edge))

    try:
        r = requests.post(url, headers=_headers(api_key), json={"path": path}, timeout=timeout)
    except requests.RequestException as e:
        return report(StepResult(step, Status.FAILED, str(e), edge))
    if r.status_code in (200, 201):
        return report(StepResult(step, Status.CREATED, "added", edge))
    # 400 here is almost always a missing or unwritable folder inside the container
    detail = f"{r.status_code} {r.text[:300]}"
    if r.status_code == 400:
        detail += " (check the volume bind and PUID/PGID)"
    return report(StepResult(step, Status.FAILED, detail, edge))


def application_payload(prowlarr: ServiceEndpoint, arr: ServiceEndpoint, arr_api_key: str,
                        categories: list) -> dict:
    impl = arr.display_name
    return {
        "syncLevel": "fullSync",
        "name": impl,
        "fields": [
            {"name": "prowlarrUrl", "value": prowlarr.internal_url},
            {"name": "baseUrl", "value": arr.internal_url},
            {"name": "apiKey", "value": arr_api_key},
            {"name": "syncCategories", "value": list(categories)},
        ],
        "implementationName": impl,
        "implementation": impl,
        "configContract": f"{impl}Settings",
        "tags": [],
    }


def ensure_application_link(prowlarr: ServiceEndpoint, api_key: str, arr: ServiceEndpoint,
                            arr_api_key: str, categories: list | None = None,
                            timeout: float = REQ_TIMEOUT) -> StepResult:
    """Link Prowlarr to an *arr app so indexers get pushed there."""
    if categories is None:
        categories = SYNC_CATEGORIES[arr.name]
    step = f"Prowlarr -> {arr.display_name}"
    edge = WiringEdge(prowlarr.name, arr.name, EdgeKind.APPLICATION_LINK, {"categories": list(categories)})
    url = f"{prowlarr.base_url}/api/v1/applications"
    try:
        apps = _list(url, api_key, timeout)
    except (requests.RequestException, ValueError) as e:
        return report(StepResult(step, Status.FAILED, f"could not list applications: {e}", edge))

    existing = next((a for a in apps if _norm(a.get("name")) == _norm(arr.display_name)), None)
    if existing:
        return report(StepResult(step, Status.EXISTS, f"already linked (id={existing.get('id')})", edge))

    payload = application_payload(prowlarr, arr, arr_api_key, categories)
    try:
        r = requests.post(url, headers=_headers(api_key), json=payload, timeout=timeout)
    except requests.RequestException as e:
        return report(StepResult(step, Status.FAILED, str(e), edge))
    if r.status_code in (200, 201):
        return report(StepResult(step, Status.CREATED, f"id={_created_id(r)}", edge))
    if r.status_code == 400 and "Should be unique" in r.text:
        return report(StepResult(step, Status.EXISTS, "already linked (400 unique)", edge))
    return report(StepResult(step, Status.FAILED, f"{r.status_code} {r.text[:300]}", edge))


def list_indexers(prowlarr: ServiceEndpoint, api_key: str, timeout: float = REQ_TIMEOUT) -> list:
    return _list(f"{prowlarr.base_url}/api/v1/indexer", api_key, timeout)


def ensure_indexer(prowlarr: ServiceEndpoint, api_key: str, definition: IndexerDefinition,
                   existing: list | None = None, timeout: float = REQ_TIMEOUT) -> StepResult:
    """
    Add one catalog indexer. Re-running must never look like an error, so a rejected
    create (HTTP error or no id in the body) counts as "already exists".
    Pass `existing` to avoid re-listing per indexer.
    """
    step = f"Indexer {definition.name}"
    edge = WiringEdge(prowlarr.name, definition.definition_id, EdgeKind.INDEXER_SYNC,
                      {"baseUrl": definition.base_url})
    if existing is None:
        try:
            existing = list_indexers(prowlarr, api_key, timeout)
        except (requests.RequestException, ValueError) as e:
            return report(StepResult(step, Status.FAILED, f"could not list indexers: {e}", edge))

    wanted = {_norm(definition.name), _norm(definition.implementation_name)} - {""}
    for idx in existing:
        if _norm(idx.get("name")) in wanted or idx.get("definitionName") == definition.definition_id:
            return report(StepResult(step, Status.EXISTS, f"already present (id={idx.get('id')})", edge))

    try:
        r = requests.post(f"{prowlarr.base_url}/api/v1/indexer", headers=_headers(api_key),
                          json=definition.payload(), timeout=timeout)
    except requests.RequestException as e:
        return report(StepResult(step, Status.FAILED, str(e), edge))
    idx_id = _created_id(r) if r.ok else None
    if idx_id is not None:
        return report(StepResult(step, Status.CREATED, f"id={idx_id}", edge))
    return report(StepResult(step, Status.EXISTS, f"may already exist or was rejected ({r.status_code})", edge))


def add_public_indexers(prowlarr: ServiceEndpoint, api_key: str, catalog=PUBLIC_INDEXERS,
                        timeout: float = REQ_TIMEOUT) -> list:
    print(f"[~] Adding {len(catalog)} public indexers to Prowlarr")
    try:
        existing = list_indexers(prowlarr, api_key, timeout)
    except (requests.RequestException, ValueError) as e:
        return [report(StepResult("Public indexers", Status.FAILED, f"could not list indexers: {e}"))]
    return [ensure_indexer(prowlarr, api_key, d, existing=existing, timeout=timeout) for d in catalog]


def trigger_sync(prowlarr: ServiceEndpoint, api_key: str, timeout: float = REQ_TIMEOUT) -> StepResult:
    """Fire ApplicationIndexerSync; completion is not awaited."""
    step = "Prowlarr indexer sync"
    edge = WiringEdge(prowlarr.name, "applications", EdgeKind.INDEXER_SYNC)
    try:
        r = requests.post(f"{prowlarr.base_url}/api/v1/command", headers=_headers(api_key),
                          json={"name": "ApplicationIndexerSync"}, timeout=timeout)
    except requests.RequestException as e:
        return report(StepResult(step, Status.FAILED, str(e), edge))
    if r.status_code in (200, 201, 202):
        return report(StepResult(step, Status.CREATED, "triggered", edge))
    return report(StepResult(step, Status.FAILED, f"{r.status_code} {r.text[:200]}", edge))
