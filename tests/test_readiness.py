"""Tests for HTTP readiness polling."""

import pytest
import requests

from readiness import wait_ready
from stack_settings import RetryPolicy, ServiceEndpoint

EP = ServiceEndpoint("prowlarr", "http://localhost:9696", "prowlarr", 9696)


class Sequence:
    """requests.get replacement that plays back statuses; None means connection refused."""

    def __init__(self, statuses):
        self.statuses = list(statuses)
        self.urls = []

    def __call__(self, url, timeout=None, allow_redirects=True, **kwargs):
        self.urls.append(url)
        assert allow_redirects is False
        status = self.statuses.pop(0)
        if status is None:
            raise requests.ConnectionError("refused")

        class R:
            status_code = status

        return R()


@pytest.mark.parametrize("status", [200, 302, 401])
def test_ready_codes(monkeypatch, status):
    seq = Sequence([status])
    monkeypatch.setattr(requests, "get", seq)
    sleeps = []
    assert wait_ready(EP, "/api/v1/system/status", RetryPolicy(3, 2), sleep=sleeps.append)
    assert seq.urls == ["http://localhost:9696/api/v1/system/status"]
    assert sleeps == []


def test_connection_refused_then_ready(monkeypatch):
    monkeypatch.setattr(requests, "get", Sequence([None, None, 200]))
    sleeps = []
    assert wait_ready(EP, "/", RetryPolicy(5, 2), sleep=sleeps.append)
    assert sleeps == [2, 2]


def test_ready_on_last_attempt(monkeypatch):
    monkeypatch.setattr(requests, "get", Sequence([None, 503, 401]))
    assert wait_ready(EP, "/", RetryPolicy(3, 1), sleep=lambda s: None)


def test_not_ready_after_budget(monkeypatch, capsys):
    seq = Sequence([None, 500, 503, 404])
    monkeypatch.setattr(requests, "get", seq)
    sleeps = []
    assert not wait_ready(EP, "/", RetryPolicy(3, 2), sleep=sleeps.append)
    # never sleeps past the final attempt
    assert sleeps == [2, 2]
    assert len(seq.urls) == 3
    assert "not responding after 3 attempts" in capsys.readouterr().out


def test_policy_budget_default():
    policy = RetryPolicy()
    assert (policy.max_attempts, policy.interval) == (30, 2.0)
    assert policy.budget == 60


def test_banner_shows_total_wait(monkeypatch, capsys):
    monkeypatch.setattr(requests, "get", Sequence([200]))
    assert wait_ready(EP, "/", RetryPolicy(), sleep=lambda s: None)
    assert "up to 60s, 30 x 2s" in capsys.readouterr().out
