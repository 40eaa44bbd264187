"""Tests for scraping the qBittorrent temporary password from container logs."""

import subprocess

import qbt_credentials
from qbt_credentials import extract_last_match, read_container_logs, resolve_log_credential

LOG_TWO_BOOTS = """\
******** Information ********
To control qBittorrent, access the WebUI at: http://localhost:8080
The WebUI administrator username is: admin
The WebUI administrator password was not set. A temporary password is provided for this session: FirstBoot1
Connection to localhost (127.0.0.1 54321) port 8080 [tcp/*] succeeded!
The WebUI administrator password was not set. A temporary password is provided for this session: SecondBoot2
"""


def test_takes_last_match():
    assert extract_last_match(LOG_TWO_BOOTS) == "SecondBoot2"


def test_no_match():
    assert extract_last_match("WebUI will be started shortly after internal preparations") is None
    assert extract_last_match("") is None


def test_resolves_first_try_without_sleeping():
    sleeps = []
    token = resolve_log_credential("qbittorrent", log_reader=lambda c: LOG_TWO_BOOTS, sleep=sleeps.append)
    assert token == "SecondBoot2"
    assert sleeps == []


def test_single_retry_after_delay():
    logs = iter(["starting...", LOG_TWO_BOOTS])
    sleeps = []
    token = resolve_log_credential("qbittorrent", retries=1, retry_delay=30,
                                   log_reader=lambda c: next(logs), sleep=sleeps.append)
    assert token == "SecondBoot2"
    assert sleeps == [30]


def test_gives_up_after_one_retry():
    reads = []
    sleeps = []

    def reader(container):
        reads.append(container)
        return ""

    assert resolve_log_credential("qb", retries=1, retry_delay=30, log_reader=reader, sleep=sleeps.append) is None
    assert reads == ["qb", "qb"]
    assert sleeps == [30]


def test_read_container_logs_without_docker(monkeypatch):
    def boom(*args, **kwargs):
        raise FileNotFoundError("docker")

    monkeypatch.setattr(qbt_credentials.subprocess, "run", boom)
    assert read_container_logs("qbittorrent") == ""


def test_read_container_logs_nonzero_exit(monkeypatch):
    def fake_run(cmd, **kwargs):
        assert cmd == ["docker", "logs", "missing"]
        return subprocess.CompletedProcess(cmd, 1, stdout="Error: No such container: missing")

    monkeypatch.setattr(qbt_credentials.subprocess, "run", fake_run)
    assert read_container_logs("missing") == ""


def test_read_container_logs_hides_stack_docker_config(monkeypatch, tmp_path):
    from stack_settings import load_settings

    # tracked so the value load_dotenv exports is rolled back
    monkeypatch.setenv("DOCKER_CONFIG", "")
    monkeypatch.delenv("DOCKER_CONFIG")
    env_file = tmp_path / ".env"
    env_file.write_text(f"DOCKER_CONFIG={tmp_path / 'srv-config'}\n")
    load_settings(env_file=str(env_file))

    seen = {}

    def fake_run(cmd, **kwargs):
        seen.update(kwargs["env"])
        return subprocess.CompletedProcess(cmd, 0, stdout=LOG_TWO_BOOTS)

    monkeypatch.setattr(qbt_credentials.subprocess, "run", fake_run)
    assert read_container_logs("qbittorrent") == LOG_TWO_BOOTS
    assert "DOCKER_CONFIG" not in seen
