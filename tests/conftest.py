import pytest
from rich.console import Console
from rich.table import Table
from collections import defaultdict

# Declared in pyproject.toml
KNOWN_MARKERS = {"unit_formatter", "unit_transport", "unit_handler", "unit_config"}


def pytest_terminal_summary(terminalreporter, exitstatus, config):
    """
    Print pass/fail/skip counts per marker at the end of the test session.
    """
    _ = (exitstatus, config)
    marker_stats = defaultdict(
        lambda: {"passed": 0, "failed": 0, "skipped": 0, "total": 0, "duration": 0.0}
    )

    for outcome in ["passed", "failed", "skipped"]:
        for report in terminalreporter.stats.get(outcome, []):
            # Only count the test call itself, or skips raised during setup
            if report.when != "call" and not (
                report.when == "setup" and report.outcome == "skipped"
            ):
                continue
            for marker in KNOWN_MARKERS:
                if marker in report.keywords:
                    stats = marker_stats[marker]
                    stats[outcome] += 1
                    stats["total"] += 1
                    stats["duration"] += getattr(report, "duration", 0.0)

    if not marker_stats:
        return

    table = Table(title="Test Statistics by Marker", show_header=True, header_style="bold magenta")
    table.add_column("Marker", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Duration (s)", justify="right", style="blue")

    for marker in sorted(marker_stats):
        stats = marker_stats[marker]
        table.add_row(
            marker,
            str(stats["total"]),
            str(stats["passed"]),
            str(stats["failed"]),
            str(stats["skipped"]),
            f"{stats['duration']:.2f}",
        )

    console = Console()
    console.print("\n")
    console.print(table)


@pytest.fixture(autouse=True)
def _no_real_loki(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fail loudly if a test tries to reach a real Loki server."""
    import requests

    def _blocked(*args, **kwargs):
        raise AssertionError("tests must not perform real HTTP requests")

    monkeypatch.setattr(requests.Session, "request", _blocked)
