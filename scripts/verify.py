"""Read-only pass that checks every wiring edge a configure run should have created."""
import requests

from arr_wiring import DOWNLOAD_CLIENT_NAME, PUBLIC_INDEXERS, REQ_TIMEOUT, _list, _norm
from results import EdgeKind, RunSummary, Status, StepResult, WiringEdge, report


def _check(summary: RunSummary, step: str, edge: WiringEdge, fetch, present, missing_status=Status.FAILED,
           missing_detail="missing"):
    try:
        items = fetch()
    except (requests.RequestException, ValueError) as e:
        return summary.add(report(StepResult(step, Status.FAILED, f"request failed: {e}", edge)))
    if present(items):
        return summary.add(report(StepResult(step, Status.EXISTS, "present", edge)))
    return summary.add(report(StepResult(step, missing_status, missing_detail, edge)))


def verify_stack(settings, keys: dict, timeout: float = REQ_TIMEOUT) -> RunSummary:
    """
    keys: {"radarr": str, "sonarr": str, "prowlarr": str}.
    Indexer propagation into the apps is only a warning since sync runs asynchronously.
    """
    summary = RunSummary()
    prowlarr = settings.endpoint("prowlarr")
    pkey = keys["prowlarr"]

    arrs = (("radarr", settings.movies_path), ("sonarr", settings.tv_path))
    for name, root in arrs:
        arr = settings.endpoint(name)
        key = keys[name]
        _check(summary, f"{DOWNLOAD_CLIENT_NAME} in {arr.display_name}",
               WiringEdge("qbittorrent", name, EdgeKind.DOWNLOAD_CLIENT),
               lambda: _list(f"{arr.base_url}/api/v3/downloadclient", key, timeout),
               lambda items: any(c.get("implementation") == "QBittorrent" for c in items))
        _check(summary, f"Root folder {root} in {arr.display_name}",
               WiringEdge(name, name, EdgeKind.ROOT_FOLDER, {"path": root}),
               lambda: _list(f"{arr.base_url}/api/v3/rootfolder", key, timeout),
               lambda items, root=root: any((f.get("path") or "").rstrip("/") == root.rstrip("/") for f in items))
        _check(summary, f"Prowlarr app {arr.display_name}",
               WiringEdge("prowlarr", name, EdgeKind.APPLICATION_LINK),
               lambda: _list(f"{prowlarr.base_url}/api/v1/applications", pkey, timeout),
               lambda items, arr=arr: any(_norm(a.get("name")) == _norm(arr.display_name) for a in items))

    try:
        indexers = _list(f"{prowlarr.base_url}/api/v1/indexer", pkey, timeout)
    except (requests.RequestException, ValueError) as e:
        summary.add(report(StepResult("Prowlarr indexers", Status.FAILED, f"request failed: {e}")))
        indexers = None
    if indexers is not None:
        names = {_norm(i.get("name")) for i in indexers}
        for d in PUBLIC_INDEXERS:
            edge = WiringEdge("prowlarr", d.definition_id, EdgeKind.INDEXER_SYNC)
            if ({_norm(d.name), _norm(d.implementation_name)} - {""}) & names:
                summary.add(report(StepResult(f"Indexer {d.name}", Status.EXISTS, "present", edge)))
            else:
                # Prowlarr rejects geo-blocked or Cloudflare-protected sites on add
                summary.add(report(StepResult(f"Indexer {d.name}", Status.DEFERRED,
                                              "not present (may be blocked in your region)", edge)))

    for name, _ in arrs:
        arr = settings.endpoint(name)
        key = keys[name]
        _check(summary, f"Indexers synced to {arr.display_name}",
               WiringEdge("prowlarr", name, EdgeKind.INDEXER_SYNC),
               lambda arr=arr, key=key: _list(f"{arr.base_url}/api/v3/indexer", key, timeout),
               lambda items: len(items) > 0,
               missing_status=Status.DEFERRED,
               missing_detail="none yet; Prowlarr sync may still be running")
    return summary
