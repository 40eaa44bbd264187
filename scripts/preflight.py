"""
Pre-flight checks before `docker compose up`: docker tooling, .env contents,
host paths, free ports and registry reachability.

Exit codes: 0 all passed, 1 critical failures, 2 warnings only.
"""
import os
import shutil
import socket
import subprocess
from dataclasses import dataclass
from pathlib import Path

import requests
from dotenv import dotenv_values

REQUIRED_VARS = ("DOCKER_CONFIG", "DOCKER_MEDIA", "PUID", "PGID", "TZ")
PLACEHOLDER_VALUES = ("your-", "change-me", "placeholder", "xxx", "CHANGEME")
MEDIA_SUBDIRS = ("movies", "tv", "downloads")

HOST_PORTS = {
    80: "nginx (HTTP)",
    443: "nginx (HTTPS)",
    32400: "Plex Media Server",
    8080: "qBittorrent WebUI",
    7878: "Radarr",
    8989: "Sonarr",
    9696: "Prowlarr",
    5055: "Overseerr",
    8181: "Tautulli",
}

REGISTRY_URL = "https://registry-1.docker.io/v2/"
PING_HOST = "8.8.8.8"

PASS, WARN, FAIL, INFO = "pass", "warn", "fail", "info"
_MARK = {PASS: "[✔]", WARN: "[!]", FAIL: "[-]", INFO: "[i]"}


@dataclass
class CheckResult:
    level: str
    message: str
    hint: str = ""

    def line(self) -> str:
        out = f"  {_MARK[self.level]} {self.message}"
        if self.hint:
            out += f"\n      → {self.hint}"
        return out


def _run(cmd: list) -> subprocess.CompletedProcess | None:
    try:
        return subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, timeout=20)
    except (OSError, subprocess.SubprocessError):
        return None


def check_docker(which=shutil.which, run=_run) -> list:
    out = []
    if not which("docker"):
        out.append(CheckResult(FAIL, "Docker is not installed", "Install Docker from https://docs.docker.com/get-docker/"))
    else:
        out.append(CheckResult(PASS, "Docker is installed"))
        info = run(["docker", "info"])
        if info is not None and info.returncode == 0:
            out.append(CheckResult(PASS, "Docker daemon is running"))
        else:
            out.append(CheckResult(FAIL, "Docker daemon is not running",
                                   "Start Docker Desktop or run 'sudo systemctl start docker'"))

    compose = run(["docker", "compose", "version"]) if which("docker") else None
    if compose is not None and compose.returncode == 0:
        out.append(CheckResult(PASS, "Docker Compose is available"))
        out.append(CheckResult(INFO, f"Version: {compose.stdout.strip().splitlines()[0] if compose.stdout.strip() else '?'}"))
    elif which("docker-compose"):
        out.append(CheckResult(WARN, "Using legacy docker-compose", "Consider upgrading to Docker Compose V2 (docker compose)"))
    else:
        out.append(CheckResult(FAIL, "Docker Compose is not available",
                               "Install Docker Compose: https://docs.docker.com/compose/install/"))
    return out


def check_env_file(env_file) -> tuple[list, dict]:
    p = Path(env_file)
    if not p.is_file():
        return [CheckResult(FAIL, f"Environment file not found: {p}",
                            "Copy .env.example to .env and configure your settings")], {}

    values = {k: (v or "").strip().strip("'\"") for k, v in dotenv_values(p).items()}
    out = [CheckResult(PASS, f"Environment file exists: {p}")]
    for var in REQUIRED_VARS:
        value = values.get(var, "")
        if not value:
            out.append(CheckResult(FAIL, f"{var} is not set", f"Add {var}=<value> to your {p} file"))
        elif any(ph in value for ph in PLACEHOLDER_VALUES):
            out.append(CheckResult(FAIL, f"{var} contains placeholder value",
                                   f"Replace the placeholder in {p} with your actual value"))
        else:
            out.append(CheckResult(PASS, f"{var} is configured"))
    return out, values


def check_paths(values: dict) -> list:
    out = []
    cfg = values.get("DOCKER_CONFIG")
    if cfg:
        cfg_path = Path(cfg)
        if cfg_path.is_dir():
            out.append(CheckResult(PASS, f"DOCKER_CONFIG directory exists: {cfg}"))
            if os.access(cfg_path, os.W_OK):
                out.append(CheckResult(PASS, "DOCKER_CONFIG is writable"))
            else:
                out.append(CheckResult(FAIL, "DOCKER_CONFIG is not writable",
                                       f"Run: chmod -R u+w {cfg} or check permissions"))
        else:
            out.append(CheckResult(WARN, f"DOCKER_CONFIG directory doesn't exist: {cfg}",
                                   "It will be created when containers start, but you may want to create it manually"))
    else:
        out.append(CheckResult(INFO, "DOCKER_CONFIG not set (skipping path check)"))

    media = values.get("DOCKER_MEDIA")
    if media:
        media_path = Path(media)
        if media_path.is_dir():
            out.append(CheckResult(PASS, f"DOCKER_MEDIA directory exists: {media}"))
            for sub in MEDIA_SUBDIRS:
                if (media_path / sub).is_dir():
                    out.append(CheckResult(PASS, f"Subdirectory exists: {sub}/"))
                else:
                    out.append(CheckResult(WARN, f"Subdirectory missing: {sub}/",
                                           f"Create it with: mkdir -p {media_path / sub}"))
        else:
            out.append(CheckResult(FAIL, f"DOCKER_MEDIA directory doesn't exist: {media}",
                                   "Create the directory or update the path in your .env"))
    else:
        out.append(CheckResult(INFO, "DOCKER_MEDIA not set (skipping path check)"))
    return out


def port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.settimeout(0.5)
        return s.connect_ex((host, port)) == 0


def check_ports(ports: dict = HOST_PORTS, in_use=port_in_use) -> list:
    out = []
    for port, service in sorted(ports.items()):
        if in_use(port):
            out.append(CheckResult(FAIL, f"Port {port} is in use ({service})",
                                   "Stop the service using this port or change the port mapping in docker-compose.yml"))
        else:
            out.append(CheckResult(PASS, f"Port {port} is available ({service})"))
    return out


def check_registry(url: str = REGISTRY_URL) -> list:
    try:
        requests.get(url, timeout=5)
        return [CheckResult(PASS, "Can reach Docker Hub")]
    except requests.RequestException:
        # compose up cannot pull images without it
        return [CheckResult(FAIL, "Cannot reach Docker Hub", "Check your internet connection and firewall settings")]


def check_internet(which=shutil.which, run=_run, host: str = PING_HOST) -> list:
    if not which("ping"):
        return []
    r = run(["ping", "-c", "1", "-W", "3", host])
    if r is not None and r.returncode == 0:
        return [CheckResult(PASS, "Internet connectivity OK")]
    return [CheckResult(WARN, "Cannot reach external network", "Check your internet connection")]


def check_network() -> list:
    return check_registry() + check_internet()


def run_preflight(env_file=".env", docker_checks=check_docker, port_checks=check_ports,
                  network_checks=check_network) -> list:
    sections = [("Docker Installation", lambda: docker_checks())]
    env_results, values = check_env_file(env_file)
    sections += [
        ("Environment Configuration", lambda: env_results),
        ("Path Validation", lambda: check_paths(values)),
        ("Port Availability", lambda: port_checks()),
        ("Network Connectivity", lambda: network_checks()),
    ]
    results = []
    for title, fn in sections:
        print(f"\n{title}")
        for res in fn():
            print(res.line())
            results.append(res)
    return results


def exit_code(results: list) -> int:
    levels = {r.level for r in results}
    if FAIL in levels:
        return 1
    if WARN in levels:
        return 2
    return 0


def summarize(results: list) -> int:
    counts = {lvl: sum(1 for r in results if r.level == lvl) for lvl in (PASS, FAIL, WARN)}
    print(f"\nPassed: {counts[PASS]}  Failed: {counts[FAIL]}  Warnings: {counts[WARN]}")
    code = exit_code(results)
    if code == 0:
        print("[✔] All checks passed! Next: docker compose up -d")
    elif code == 2:
        print("[!] Checks passed with warnings. Review the issues above.")
    else:
        print("[-] Critical issues found. Fix them before running docker compose.")
    return code
