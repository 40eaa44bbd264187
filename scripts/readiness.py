import time

import requests

from stack_settings import RetryPolicy, ServiceEndpoint

# 401: Prowlarr/*arr answer the status probe without a key this way; the server is up
READY_STATUS_CODES = (200, 302, 401)


def probe(url: str, timeout: float = 5) -> int | None:
    """One GET without following redirects. None when nothing answered."""
    try:
        return requests.get(url, timeout=timeout, allow_redirects=False).status_code
    except requests.RequestException:
        return None


def wait_ready(endpoint: ServiceEndpoint, path: str = "/", policy: RetryPolicy = RetryPolicy(),
               sleep=time.sleep, timeout: float = 5) -> bool:
    url = f"{endpoint.base_url}{path}"
    print(f"[~] Waiting for {endpoint.display_name} at {url} "
          f"(up to {policy.budget:g}s, {policy.max_attempts} x {policy.interval:g}s)")
    last = None
    for attempt in range(1, policy.max_attempts + 1):
        last = probe(url, timeout=timeout)
        if last in READY_STATUS_CODES:
            print(f"[✔] {endpoint.display_name} is ready ({last})")
            return True
        if attempt < policy.max_attempts:
            sleep(policy.interval)
    seen = last if last is not None else "no response"
    print(f"[-] {endpoint.display_name} not responding after {policy.max_attempts} attempts (last: {seen})")
    return False
