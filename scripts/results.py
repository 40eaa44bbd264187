from dataclasses import dataclass, field
from enum import Enum


class EdgeKind(str, Enum):
    DOWNLOAD_CLIENT = "download-client"
    INDEXER_SYNC = "indexer-sync"
    APPLICATION_LINK = "application-link"
    ROOT_FOLDER = "root-folder"
    REQUEST_MANAGER = "request-manager"


@dataclass(frozen=True)
class WiringEdge:
    source: str
    target: str
    kind: EdgeKind
    parameters: dict = field(default_factory=dict, compare=False, hash=False)

    def __str__(self):
        return f"{self.source} -> {self.target} ({self.kind.value})"


class Status(str, Enum):
    CREATED = "created"
    EXISTS = "exists"
    UPDATED = "updated"
    SKIPPED = "skipped"
    DEFERRED = "deferred"
    FAILED = "failed"


_TAGS = {
    Status.CREATED: "[+]",
    Status.UPDATED: "[+]",
    Status.EXISTS: "[=]",
    Status.SKIPPED: "[=]",
    Status.DEFERRED: "[!]",
    Status.FAILED: "[-]",
}


@dataclass
class StepResult:
    step: str
    status: Status
    detail: str = ""
    edge: WiringEdge | None = None

    @property
    def ok(self) -> bool:
        return self.status is not Status.FAILED

    def line(self) -> str:
        return f"{_TAGS[self.status]} {self.step}: {self.detail}" if self.detail else f"{_TAGS[self.status]} {self.step}"


def report(result: StepResult) -> StepResult:
    print(result.line())
    return result


class FatalStepError(RuntimeError):
    """Raised when the run cannot continue; remediation is shown to the operator."""

    def __init__(self, message: str, remediation: str = ""):
        super().__init__(message)
        self.remediation = remediation


@dataclass
class RunSummary:
    results: list = field(default_factory=list)

    def add(self, result: StepResult) -> StepResult:
        self.results.append(result)
        return result

    def extend(self, results):
        for r in results:
            self.add(r)

    def by_status(self, status: Status) -> list:
        return [r for r in self.results if r.status is status]

    @property
    def failed(self) -> list:
        return self.by_status(Status.FAILED)

    @property
    def deferred(self) -> list:
        return self.by_status(Status.DEFERRED)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    def render(self) -> str:
        counts = {s: len(self.by_status(s)) for s in Status}
        lines = ["", "Summary:"]
        lines += [f"  {r.line()}" for r in self.results]
        lines.append("  " + ", ".join(f"{s.value}={n}" for s, n in counts.items() if n))
        return "\n".join(lines)
