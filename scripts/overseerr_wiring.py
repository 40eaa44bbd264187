import requests

from arr_wiring import REQ_TIMEOUT, _headers, _list, _norm
from results import EdgeKind, Status, StepResult, WiringEdge, report
from stack_settings import ServiceEndpoint


def request_manager_initialized(overseerr: ServiceEndpoint, api_key: str,
                                timeout: float = REQ_TIMEOUT) -> bool | None:
    """
    True once the setup wizard (Plex sign-in) has been completed.
    None if Overseerr could not be asked at all.
    """
    try:
        r = requests.get(f"{overseerr.base_url}/api/v1/settings/public",
                         headers=_headers(api_key), timeout=timeout)
        r.raise_for_status()
        return bool((r.json() or {}).get("initialized"))
    except (requests.RequestException, ValueError) as e:
        print(f"[!] Could not read Overseerr public settings: {e}")
        return None


def first_quality_profile(arr: ServiceEndpoint, arr_api_key: str, timeout: float = REQ_TIMEOUT) -> dict | None:
    profiles = _list(f"{arr.base_url}/api/v3/qualityprofile", arr_api_key, timeout)
    return profiles[0] if profiles else None


def request_manager_payload(arr: ServiceEndpoint, arr_api_key: str, profile: dict, root_folder: str) -> dict:
    payload = {
        "name": arr.display_name,
        "hostname": arr.internal_hostname,
        "port": arr.port,
        "apiKey": arr_api_key,
        "useSsl": False,
        "baseUrl": "",
        "activeProfileId": profile.get("id"),
        "activeProfileName": profile.get("name"),
        "activeDirectory": root_folder,
        "is4k": False,
        "isDefault": True,
        "externalUrl": "",
        "syncEnabled": True,
        "preventSearch": False,
        "tags": [],
    }
    if arr.name == "radarr":
        payload["minimumAvailability"] = "released"
    else:
        payload.update({
            "activeAnimeProfileId": profile.get("id"),
            "activeAnimeProfileName": profile.get("name"),
            "activeAnimeDirectory": root_folder,
            "animeTags": [],
            "enableSeasonFolders": True,
        })
    return payload


def ensure_request_manager_link(overseerr: ServiceEndpoint, api_key: str, arr: ServiceEndpoint,
                                arr_api_key: str, root_folder: str,
                                timeout: float = REQ_TIMEOUT) -> StepResult:
    step = f"Overseerr -> {arr.display_name}"
    edge = WiringEdge(overseerr.name, arr.name, EdgeKind.REQUEST_MANAGER, {"rootFolder": root_folder})
    url = f"{overseerr.base_url}/api/v1/settings/{arr.name}"
    try:
        existing = _list(url, api_key, timeout)
    except (requests.RequestException, ValueError) as e:
        return report(StepResult(step, Status.FAILED, f"could not list {arr.name} servers: {e}", edge))

    for srv in existing:
        if _norm(srv.get("name")) == _norm(arr.display_name) or srv.get("hostname") == arr.internal_hostname:
            return report(StepResult(step, Status.EXISTS, f"already present (id={srv.get('id')})", edge))

    try:
        profile = first_quality_profile(arr, arr_api_key, timeout)
    except (requests.RequestException, ValueError) as e:
        return report(StepResult(step, Status.FAILED, f"could not read {arr.display_name} quality profiles: {e}", edge))
    if not profile:
        return report(StepResult(step, Status.FAILED, f"{arr.display_name} has no quality profiles", edge))

    payload = request_manager_payload(arr, arr_api_key, profile, root_folder)
    try:
        r = requests.post(url, headers=_headers(api_key), json=payload, timeout=timeout)
    except requests.RequestException as e:
        return report(StepResult(step, Status.FAILED, str(e), edge))
    if r.status_code in (200, 201):
        return report(StepResult(step, Status.CREATED, f"profile={profile.get('name')}", edge))
    return report(StepResult(step, Status.FAILED, f"{r.status_code} {r.text[:300]}", edge))


def ensure_request_manager_application_url(overseerr: ServiceEndpoint, api_key: str, application_url: str,
                                           timeout: float = REQ_TIMEOUT) -> StepResult:
    step = "Overseerr application URL"
    url = f"{overseerr.base_url}/api/v1/settings/main"
    try:
        r = requests.get(url, headers=_headers(api_key), timeout=timeout)
        r.raise_for_status()
        main = r.json() or {}
    except (requests.RequestException, ValueError) as e:
        return report(StepResult(step, Status.FAILED, f"could not read main settings: {e}"))

    if (main.get("applicationUrl") or "").rstrip("/") == application_url.rstrip("/"):
        return report(StepResult(step, Status.EXISTS, application_url))

    body = dict(main)
    body["applicationUrl"] = application_url
    try:
        u = requests.post(url, headers=_headers(api_key), json=body, timeout=timeout)
    except requests.RequestException as e:
        return report(StepResult(step, Status.FAILED, str(e)))
    if u.status_code in (200, 201):
        return report(StepResult(step, Status.UPDATED, application_url))
    return report(StepResult(step, Status.FAILED, f"{u.status_code} {u.text[:200]}"))
