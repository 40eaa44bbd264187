#!/usr/bin/env python3
"""
Wire the Simplarr containers together after `docker compose up -d`:
qBittorrent -> Radarr/Sonarr, Prowlarr -> Radarr/Sonarr, public indexers,
root folders, and (once signed in with Plex) Overseerr -> Radarr/Sonarr.

Safe to re-run: every step checks for an existing registration first.
"""
import argparse
import dataclasses
import os
import sys
import time

import arr_wiring
import overseerr_wiring
import preflight
from config_locator import locate_api_key, read_qbittorrent_webui, wait_for_api_key
from qbt_credentials import read_container_logs, resolve_log_credential
from readiness import wait_ready
from results import EdgeKind, FatalStepError, RunSummary, Status, StepResult, WiringEdge, report
from stack_settings import ARR_SERVICES, STATUS_PATHS, Credential, CredentialSource, load_settings
from verify import verify_stack

REQUIRED_SERVICES = ("radarr", "sonarr", "prowlarr", "qbittorrent")


class StackWiring:
    """
    One configure run. `prompt(label) -> str` is the interactive fallback for
    credentials that can't be found; None means non-interactive.
    """

    def __init__(self, settings, prompt=None, sleep=time.sleep, log_reader=read_container_logs,
                 skip_wait=False):
        self.settings = settings
        self.prompt = prompt
        self.sleep = sleep
        self.log_reader = log_reader
        self.skip_wait = skip_wait
        self.credentials: dict[str, Credential] = {}
        self.qbt_username = settings.qb_username
        self.qbt_endpoint = settings.endpoint("qbittorrent")
        self.summary = RunSummary()

    # -- phases -------------------------------------------------------------

    def wait_for_services(self):
        if self.skip_wait:
            print("[=] Skipping readiness checks (--skip-wait)")
            return
        for svc in REQUIRED_SERVICES:
            ep = self.settings.endpoint(svc)
            if not wait_ready(ep, STATUS_PATHS[svc], self.settings.retry, sleep=self.sleep):
                raise FatalStepError(
                    f"{ep.display_name} is not responding at {ep.base_url}",
                    f"Check `docker compose ps` and `docker logs {svc}`, or set {svc.upper()}_URL.")

    def _ask(self, label: str) -> str:
        if self.prompt is None:
            return ""
        return (self.prompt(label) or "").strip()

    def locate_credentials(self):
        s = self.settings
        for svc in ARR_SERVICES:
            override = s.api_key_overrides.get(svc)
            if override:
                self.credentials[svc] = Credential(svc, override, CredentialSource.ENVIRONMENT)
                continue
            if self.skip_wait:
                cred = locate_api_key(svc, s.config_root)
            else:
                cred = wait_for_api_key(svc, s.config_root, s.retry, sleep=self.sleep)
            if cred is None:
                typed = self._ask(f"Enter {svc.capitalize()} API key (from Settings > General): ")
                cred = Credential(svc, typed, CredentialSource.PROMPT) if typed else None
            if cred is None:
                raise FatalStepError(
                    f"Could not get API key for {svc.capitalize()} from {s.config_root}/{svc}/config.xml",
                    f"Make sure {svc} has started once, point CONFIG_DIR at the compose config folder, "
                    f"or set {svc.upper()}_API_KEY.")
            print(f"[✔] {svc.capitalize()} API key found ({cred.source.value})")
            self.credentials[svc] = cred

    def resolve_qbt_password(self):
        s = self.settings
        webui = read_qbittorrent_webui(s.config_root)
        if webui.get("username"):
            self.qbt_username = webui["username"]
        if webui.get("port"):
            self.qbt_endpoint = dataclasses.replace(self.qbt_endpoint, port=webui["port"])

        if s.qb_password:
            self.credentials["qbittorrent"] = Credential("qbittorrent", s.qb_password, CredentialSource.ENVIRONMENT)
            return
        token = resolve_log_credential(s.qb_container, retries=s.qb_log_retries,
                                       retry_delay=s.qb_log_retry_delay,
                                       log_reader=self.log_reader, sleep=self.sleep)
        if token:
            self.credentials["qbittorrent"] = Credential("qbittorrent", token, CredentialSource.LOG_SCRAPE)
            return
        typed = self._ask("Enter qBittorrent WebUI password: ")
        if typed:
            self.credentials["qbittorrent"] = Credential("qbittorrent", typed, CredentialSource.PROMPT)
            return
        raise FatalStepError(
            "Could not retrieve the qBittorrent password",
            f"Check: docker logs {s.qb_container} 2>&1 | grep -i password, then set QB_PASSWORD and re-run.")

    def wire_download_clients(self):
        qbt = self.qbt_endpoint
        password = self.credentials["qbittorrent"].secret
        for name in ("radarr", "sonarr"):
            self.summary.add(arr_wiring.ensure_download_client(
                self.settings.endpoint(name), self.credentials[name].secret, qbt,
                self.qbt_username, password, timeout=self.settings.request_timeout))

    def wire_root_folders(self):
        s = self.settings
        for name, path in (("radarr", s.movies_path), ("sonarr", s.tv_path)):
            self.summary.add(arr_wiring.ensure_root_folder(
                s.endpoint(name), self.credentials[name].secret, path, timeout=s.request_timeout))

    def wire_application_links(self):
        s = self.settings
        prowlarr = s.endpoint("prowlarr")
        for name in ("radarr", "sonarr"):
            self.summary.add(arr_wiring.ensure_application_link(
                prowlarr, self.credentials["prowlarr"].secret, s.endpoint(name),
                self.credentials[name].secret, arr_wiring.SYNC_CATEGORIES[name], timeout=s.request_timeout))

    def add_indexers(self):
        s = self.settings
        self.summary.extend(arr_wiring.add_public_indexers(
            s.endpoint("prowlarr"), self.credentials["prowlarr"].secret, timeout=s.request_timeout))

    def trigger_sync(self):
        s = self.settings
        print(f"[~] Waiting {s.sync_grace:g}s for indexers to settle")
        self.sleep(s.sync_grace)
        self.summary.add(arr_wiring.trigger_sync(
            s.endpoint("prowlarr"), self.credentials["prowlarr"].secret, timeout=s.request_timeout))

    def _defer(self, detail: str):
        edge = WiringEdge("overseerr", "radarr,sonarr", EdgeKind.REQUEST_MANAGER)
        self.summary.add(report(StepResult("Overseerr", Status.DEFERRED, detail, edge)))
        print("    → Sign in to Overseerr with Plex in the browser, then re-run: simplarr configure")

    def wire_request_manager(self):
        """Optional branch: needs a manual Plex sign-in first, so absence is a deferral, not an error."""
        s = self.settings
        overseerr = s.endpoint("overseerr")
        key = s.api_key_overrides.get("overseerr")
        cred = Credential("overseerr", key, CredentialSource.ENVIRONMENT) if key else \
            locate_api_key("overseerr", s.config_root)
        if cred is None:
            return self._defer(f"no API key in {s.config_root}/overseerr/settings.json yet")
        self.credentials["overseerr"] = cred

        if not self.skip_wait and not wait_ready(overseerr, STATUS_PATHS["overseerr"], s.retry, sleep=self.sleep):
            return self._defer(f"not reachable at {overseerr.base_url}")
        initialized = overseerr_wiring.request_manager_initialized(overseerr, cred.secret, timeout=s.request_timeout)
        if not initialized:
            return self._defer("setup wizard not completed (initialized=false)")

        for name, path in (("radarr", s.movies_path), ("sonarr", s.tv_path)):
            self.summary.add(overseerr_wiring.ensure_request_manager_link(
                overseerr, cred.secret, s.endpoint(name), self.credentials[name].secret, path,
                timeout=s.request_timeout))
        app_url = os.getenv("OVERSEERR_APPLICATION_URL", "")
        if app_url:
            self.summary.add(overseerr_wiring.ensure_request_manager_application_url(
                overseerr, cred.secret, app_url, timeout=s.request_timeout))

    # -- driver -------------------------------------------------------------

    def run(self) -> RunSummary:
        phases = [
            ("Waiting for services", self.wait_for_services),
            ("Reading API keys", self.locate_credentials),
            ("qBittorrent credentials", self.resolve_qbt_password),
            ("Configuring download clients", self.wire_download_clients),
            ("Configuring root folders", self.wire_root_folders),
            ("Configuring Prowlarr connections", self.wire_application_links),
            ("Adding public indexers", self.add_indexers),
            ("Syncing indexers", self.trigger_sync),
            ("Configuring Overseerr", self.wire_request_manager),
        ]
        for title, phase in phases:
            print(f"\n── {title} ──")
            phase()
        return self.summary


# ---------------------------
# CLI

def _console_prompt(label: str) -> str:
    try:
        return input(label)
    except EOFError:
        return ""


def _add_stack_args(p: argparse.ArgumentParser):
    p.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    p.add_argument("--config-root", help="folder holding <service>/config.xml (default: CONFIG_DIR or DOCKER_CONFIG)")
    for svc in ("radarr", "sonarr", "prowlarr", "qbittorrent", "overseerr"):
        p.add_argument(f"--{svc}-url", dest=f"{svc}_url", help=f"host-side {svc} URL")


def _settings_from_args(args):
    urls = {svc: getattr(args, f"{svc}_url") for svc in ("radarr", "sonarr", "prowlarr", "qbittorrent", "overseerr")
            if getattr(args, f"{svc}_url", None)}
    return load_settings(args.env_file, config_root=args.config_root, urls=urls)


def _print_fatal(e: FatalStepError):
    print(f"\n[-] {e}")
    if e.remediation:
        print(f"    → {e.remediation}")


def cmd_configure(args) -> int:
    settings = _settings_from_args(args)
    interactive = not args.no_input and sys.stdin.isatty()
    wiring = StackWiring(settings, prompt=_console_prompt if interactive else None, skip_wait=args.skip_wait)
    try:
        summary = wiring.run()
    except FatalStepError as e:
        _print_fatal(e)
        print(wiring.summary.render())
        return 1
    print(summary.render())
    if summary.exit_code == 0:
        print("\n[✔] Configuration complete")
        if summary.deferred:
            print("[!] Some steps were deferred; re-run after completing them.")
    return summary.exit_code


def cmd_verify(args) -> int:
    settings = _settings_from_args(args)
    keys = {}
    for svc in ARR_SERVICES:
        key = settings.api_key_overrides.get(svc)
        if not key:
            cred = locate_api_key(svc, settings.config_root)
            key = cred.secret if cred else ""
        if not key:
            print(f"[-] No API key for {svc}; run `simplarr configure` first or set {svc.upper()}_API_KEY")
            return 1
        keys[svc] = key
    summary = verify_stack(settings, keys, timeout=settings.request_timeout)
    print(summary.render())
    return summary.exit_code


def cmd_preflight(args) -> int:
    return preflight.summarize(preflight.run_preflight(args.env_file))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="simplarr", description="Simplarr stack wiring")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("configure", help="wire the running containers together")
    _add_stack_args(p)
    p.add_argument("--skip-wait", action="store_true", help="don't poll services / config files before wiring")
    p.add_argument("--no-input", action="store_true", help="never prompt; fail instead")
    p.set_defaults(func=cmd_configure)

    p = sub.add_parser("verify", help="check that everything is wired (read-only)")
    _add_stack_args(p)
    p.set_defaults(func=cmd_verify)

    p = sub.add_parser("preflight", help="check the host before docker compose up")
    p.add_argument("--env-file", default=".env")
    p.set_defaults(func=cmd_preflight)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except FatalStepError as e:
        # bad settings surface before any wiring starts
        _print_fatal(e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
