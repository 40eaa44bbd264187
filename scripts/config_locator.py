import json
import re
import time
import xml.etree.ElementTree as ET
from pathlib import Path

from stack_settings import Credential, CredentialSource, RetryPolicy

XML_SERVICES = ("radarr", "sonarr", "prowlarr")


def config_path(service: str, config_root) -> Path:
    root = Path(config_root)
    if service == "overseerr":
        return root / "overseerr" / "settings.json"
    if service in XML_SERVICES:
        return root / service / "config.xml"
    raise ValueError(f"No known config file for service '{service}'")


def read_arr_setting(service: str, config_root, element: str) -> str | None:
    """
    Read one top-level element (ApiKey, Port, BindAddress, ...) from an *arr config.xml.
    A file the service is still writing may not parse; fall back to a plain scan.
    """
    p = config_path(service, config_root)
    if not p.is_file():
        return None
    try:
        text = p.read_text(encoding="utf-8", errors="ignore")
    except OSError as e:
        print(f"[!] Could not read {p}: {e}")
        return None

    try:
        value = ET.fromstring(text).findtext(f".//{element}")
    except ET.ParseError:
        m = re.search(rf"<{element}>\s*([^<]+?)\s*</{element}>", text)
        value = m.group(1) if m else None
    value = (value or "").strip()
    return value or None


def _read_overseerr_key(p: Path) -> str | None:
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"[!] Could not parse {p}: {e}")
        return None
    key = ((data or {}).get("main") or {}).get("apiKey")
    return key.strip() if isinstance(key, str) and key.strip() else None


def locate_api_key(service: str, config_root) -> Credential | None:
    """Return the service's API key from its own config file, or None if not there (yet)."""
    p = config_path(service, config_root)
    if not p.is_file():
        return None
    if service == "overseerr":
        key = _read_overseerr_key(p)
    else:
        key = read_arr_setting(service, config_root, "ApiKey")
    if not key:
        return None
    return Credential(owner=service, secret=key, source=CredentialSource.FILE_CONFIG)


def wait_for_api_key(service: str, config_root, policy: RetryPolicy = RetryPolicy(),
                     sleep=time.sleep) -> Credential | None:
    for attempt in range(1, policy.max_attempts + 1):
        cred = locate_api_key(service, config_root)
        if cred:
            return cred
        if attempt < policy.max_attempts:
            if attempt == 1:
                print(f"[~] Waiting for {config_path(service, config_root)} to be written")
            sleep(policy.interval)
    return None


def _qbt_conf_candidates(config_root) -> list[Path]:
    base = Path(config_root) / "qbittorrent"
    return [base / "qBittorrent" / "qBittorrent.conf", base / "qBittorrent.conf"]


def read_qbittorrent_webui(config_root) -> dict:
    """
    Lightweight scrape of qBittorrent.conf [Preferences] WebUI\\* keys.
    Returns e.g. {"port": 8080, "username": "admin"}; empty dict if no file.
    """
    p = next((c for c in _qbt_conf_candidates(config_root) if c.is_file()), None)
    if p is None:
        return {}
    out = {}
    in_prefs = False
    with open(p, "r", encoding="utf-8", errors="ignore") as f:
        for line in f:
            s = line.strip()
            if s.startswith("[") and s.endswith("]"):
                in_prefs = s.lower() == "[preferences]"
                continue
            if not in_prefs or "=" not in s:
                continue
            k, v = (part.strip() for part in s.split("=", 1))
            k = k.replace("\\\\", "\\").lower()
            if k == "webui\\port" and v.isdigit():
                out["port"] = int(v)
            elif k == "webui\\username" and v:
                out["username"] = v
    return out
