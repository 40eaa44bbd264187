"""Tests for the read-only verification pass."""

from results import Status
from verify import verify_stack

from conftest import PROWLARR, PROWLARR_KEY, RADARR, RADARR_KEY, SONARR, SONARR_KEY

KEYS = {"radarr": RADARR_KEY, "sonarr": SONARR_KEY, "prowlarr": PROWLARR_KEY}


def _steps(summary, status):
    return [r.step for r in summary.by_status(status)]


def test_empty_stack_reports_missing_edges(wired_stack, settings):
    summary = verify_stack(settings, KEYS)
    assert summary.exit_code == 1
    assert "qBittorrent in Radarr" in _steps(summary, Status.FAILED)
    assert "Root folder /tv in Sonarr" in _steps(summary, Status.FAILED)
    assert "Prowlarr app Sonarr" in _steps(summary, Status.FAILED)
    # missing indexers and propagation are warnings only
    assert len(summary.deferred) == 5 + 2
    assert not any(c[0] != "GET" for c in wired_stack.calls)


def test_fully_wired_stack_passes(wired_stack, settings):
    for base, name in ((RADARR, "Radarr"), (SONARR, "Sonarr")):
        wired_stack.seed(f"{base}/api/v3/downloadclient", [{"id": 1, "implementation": "QBittorrent"}])
        wired_stack.seed(f"{base}/api/v3/indexer", [{"id": 1, "name": "YTS (Prowlarr)"}])
        wired_stack.seed(f"{PROWLARR}/api/v1/applications",
                         wired_stack.collections[f"{PROWLARR}/api/v1/applications"] + [{"id": 2, "name": name}])
    wired_stack.seed(f"{RADARR}/api/v3/rootfolder", [{"path": "/movies"}])
    wired_stack.seed(f"{SONARR}/api/v3/rootfolder", [{"path": "/tv/"}])
    wired_stack.seed(f"{PROWLARR}/api/v1/indexer", [
        {"name": "YTS"}, {"name": "The Pirate Bay"}, {"name": "TorrentGalaxy"},
        {"name": "Nyaa.si"}, {"name": "LimeTorrents"},
    ])

    summary = verify_stack(settings, KEYS)
    assert summary.exit_code == 0
    assert summary.deferred == []


def test_unreachable_prowlarr_fails(wired_stack, settings):
    wired_stack.down.add(PROWLARR)
    summary = verify_stack(settings, KEYS)
    assert "Prowlarr indexers" in _steps(summary, Status.FAILED)
