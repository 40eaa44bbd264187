import os
import re
import subprocess
import time

# "The WebUI administrator password was not set. A temporary password is provided for this session: AbC123xyz"
TEMP_PASSWORD_PATTERN = r"temporary password[^:]*:\s*(\S+)"


def _docker_env() -> dict:
    # the stack .env exports DOCKER_CONFIG as the media config root; the docker CLI
    # reads the same name as its client config dir (contexts, auth)
    return {k: v for k, v in os.environ.items() if k != "DOCKER_CONFIG"}


def read_container_logs(container: str) -> str:
    try:
        proc = subprocess.run(
            ["docker", "logs", container],
            stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, timeout=20, env=_docker_env()
        )
    except (OSError, subprocess.SubprocessError) as e:
        print(f"[-] Could not read logs from {container}: {e}")
        return ""
    if proc.returncode != 0:
        print(f"[-] docker logs {container} exited {proc.returncode}: {proc.stdout.strip()[:200]}")
        return ""
    return proc.stdout


def extract_last_match(text: str, pattern: str = TEMP_PASSWORD_PATTERN) -> str | None:
    # qBittorrent prints a fresh password on every restart; only the newest one works
    matches = re.findall(pattern, text or "", flags=re.IGNORECASE)
    return matches[-1].strip() if matches else None


def resolve_log_credential(container: str, pattern: str = TEMP_PASSWORD_PATTERN,
                           retries: int = 1, retry_delay: float = 30,
                           log_reader=read_container_logs, sleep=time.sleep) -> str | None:
    for attempt in range(retries + 1):
        token = extract_last_match(log_reader(container), pattern)
        if token:
            print(f"[✔] Found temporary password in {container} logs")
            return token
        if attempt < retries:
            print(f"[~] No temporary password in {container} logs yet; retrying in {retry_delay:g}s")
            sleep(retry_delay)
    print(f"[-] No temporary password found in {container} logs")
    return None
