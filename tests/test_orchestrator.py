"""Tests for the update orchestrator."""

import threading
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from conftest import tags_feed
from resonite_mod_updater.core.config import RESONITE_MOD_LOADER_SOURCE, UpdaterConfig
from resonite_mod_updater.core.exceptions import (
    ConfigurationError,
    GitHubAuthenticationError,
    ModuleParseError,
    NoModulesFoundError,
    RateLimitExhaustedError,
)
from resonite_mod_updater.core.models import SyncOutcome, SyncStatus
from resonite_mod_updater.github.client import GitHubClient
from resonite_mod_updater.github.locators import FeedLocator
from resonite_mod_updater.github.resolver import SourceResolver
from resonite_mod_updater.github.retry import RetryPolicy
from resonite_mod_updater.orchestrator.core import RunResult, UpdateOrchestrator
from resonite_mod_updater.sync.synchronizer import ArtifactSynchronizer

NEW_BUILD = b"new build"


class FakeScanner:
    """Reads a link from module files written as `LINK <url>`."""

    def __init__(self):
        self.calls: list[bytes] = []

    def extract_link(self, data: bytes) -> str | None:
        self.calls.append(data)
        text = data.decode()
        if text.startswith("BAD"):
            raise ModuleParseError("Not a PE image")
        if text.startswith("BOOM"):
            raise RuntimeError("boom")
        if text.startswith("LINK "):
            return text.split()[1]
        return None


def github_handler(requests: list[httpx.Request], payload: bytes = NEW_BUILD):
    """Serve tag feeds for every repository except `missing`, and asset downloads."""

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path.endswith("/tags.atom"):
            owner, repo = path.strip("/").split("/")[:2]
            if repo == "missing":
                return httpx.Response(404)
            return httpx.Response(200, text=tags_feed(owner, repo, "v2.0.0"))
        if "/releases/download/" in path:
            return httpx.Response(200, content=payload)
        return httpx.Response(404)

    return handler


def build_orchestrator(client, scanner=None, token: str | None = None, dry_run: bool = False):
    return UpdateOrchestrator(
        scanner=scanner or FakeScanner(),
        resolver=SourceResolver(client, token=token),
        synchronizer=ArtifactSynchronizer(client, dry_run=dry_run),
    )


def write_module(folder: Path, name: str, content: str) -> Path:
    path = folder / name
    path.write_bytes(content.encode())
    return path


def outcome_for(folder: Path, name: str, status: SyncStatus) -> SyncOutcome:
    return SyncOutcome(filename=name, path=folder / name, status=status)


class TestDiscovery:
    """Tests for module discovery."""

    def test_sorted_dll_files_only(self, make_client, mods_dir: Path) -> None:
        write_module(mods_dir, "Zeta.dll", "x")
        write_module(mods_dir, "Alpha.dll", "x")
        write_module(mods_dir, "readme.txt", "x")
        (mods_dir / "nested.dll").mkdir()

        orchestrator = build_orchestrator(make_client(github_handler([])))
        modules = orchestrator.discover_modules(mods_dir)
        assert [m.filename for m in modules] == ["Alpha.dll", "Zeta.dll"]
        assert all(m.path.is_absolute() for m in modules)

    def test_missing_folder(self, make_client, temp_dir: Path) -> None:
        orchestrator = build_orchestrator(make_client(github_handler([])))
        with pytest.raises(ConfigurationError):
            orchestrator.run(temp_dir / "missing")

    def test_empty_folder(self, make_client, mods_dir: Path) -> None:
        requests: list[httpx.Request] = []
        orchestrator = build_orchestrator(make_client(github_handler(requests)))
        with pytest.raises(NoModulesFoundError):
            orchestrator.run(mods_dir)
        assert requests == []


class TestRun:
    """Tests for UpdateOrchestrator.run."""

    def test_mixed_folder(self, make_client, mods_dir: Path) -> None:
        """Every module ends in exactly one outcome, in path order."""
        write_module(mods_dir, "Foo.dll", "LINK https://github.com/acme/foo")
        write_module(mods_dir, "_Skip.dll", "LINK https://github.com/acme/skip")
        write_module(mods_dir, "NoLink.dll", "plain assembly")
        write_module(mods_dir, "Bad.dll", "BAD")

        requests: list[httpx.Request] = []
        scanner = FakeScanner()
        result = build_orchestrator(make_client(github_handler(requests)), scanner).run(mods_dir)

        statuses = [(o.filename, o.status) for o in result.outcomes]
        assert statuses == [
            ("Bad.dll", SyncStatus.ERROR),
            ("Foo.dll", SyncStatus.UPDATED),
            ("NoLink.dll", SyncStatus.NO_LINK_FOUND),
            ("_Skip.dll", SyncStatus.IGNORED),
        ]
        assert result.succeeded
        assert len(scanner.calls) == 3
        assert (mods_dir / "Foo.dll").read_bytes() == NEW_BUILD
        assert all("/skip/" not in request.url.path for request in requests)

    def test_updated_outcome_carries_source(self, make_client, mods_dir: Path) -> None:
        write_module(mods_dir, "Foo.dll", "LINK https://github.com/acme/foo")
        result = build_orchestrator(make_client(github_handler([]))).run(mods_dir)

        outcome = result.outcomes[0]
        assert outcome.source_url == (
            "https://github.com/acme/foo/releases/download/v2.0.0/Foo.dll"
        )

    def test_second_run_is_up_to_date(self, make_client, mods_dir: Path) -> None:
        """The installed build still carries its Link, so a rerun finds nothing to do."""
        write_module(mods_dir, "Foo.dll", "LINK https://github.com/acme/foo v1")
        upstream = b"LINK https://github.com/acme/foo v2"
        orchestrator = build_orchestrator(make_client(github_handler([], payload=upstream)))

        first = orchestrator.run(mods_dir)
        second = orchestrator.run(mods_dir)

        assert [o.status for o in first.outcomes] == [SyncStatus.UPDATED]
        assert [o.status for o in second.outcomes] == [SyncStatus.UP_TO_DATE]
        assert (mods_dir / "Foo.dll").read_bytes() == upstream

    def test_dry_run_leaves_files(self, make_client, mods_dir: Path) -> None:
        path = write_module(mods_dir, "Foo.dll", "LINK https://github.com/acme/foo")
        result = build_orchestrator(make_client(github_handler([])), dry_run=True).run(mods_dir)

        assert result.dry_run
        assert result.outcomes[0].status == SyncStatus.UPDATED
        assert path.read_bytes() == b"LINK https://github.com/acme/foo"

    def test_invalid_link(self, make_client, mods_dir: Path) -> None:
        write_module(mods_dir, "Foo.dll", "LINK https://github.com/acme/missing")
        result = build_orchestrator(make_client(github_handler([]))).run(mods_dir)

        outcome = result.outcomes[0]
        assert outcome.status == SyncStatus.INVALID_LINK
        assert outcome.attempted_url == "https://github.com/acme/missing"
        assert result.succeeded

    def test_foreign_host_is_invalid_without_request(self, make_client, mods_dir: Path) -> None:
        write_module(mods_dir, "Foo.dll", "LINK https://gitlab.com/acme/foo")
        requests: list[httpx.Request] = []
        result = build_orchestrator(make_client(github_handler(requests))).run(mods_dir)

        assert result.outcomes[0].status == SyncStatus.INVALID_LINK
        assert requests == []

    def test_release_without_asset_is_no_link(self, make_client, mods_dir: Path) -> None:
        write_module(mods_dir, "Foo.dll", "LINK https://github.com/acme/foo")
        client = make_client(
            lambda request: httpx.Response(200, json={"tag_name": "v1", "assets": []}),
            token="abc",
        )
        result = build_orchestrator(client, token="abc").run(mods_dir)
        assert result.outcomes[0].status == SyncStatus.NO_LINK_FOUND

    def test_unexpected_error_does_not_stop_run(self, make_client, mods_dir: Path) -> None:
        write_module(mods_dir, "A.dll", "BOOM")
        write_module(mods_dir, "B.dll", "LINK https://github.com/acme/b")
        result = build_orchestrator(make_client(github_handler([]))).run(mods_dir)

        assert [o.status for o in result.outcomes] == [SyncStatus.ERROR, SyncStatus.UPDATED]
        assert result.outcomes[0].error_type == "RuntimeError"
        assert result.succeeded

    def test_bad_token_stops_run(self, make_client, mods_dir: Path) -> None:
        write_module(mods_dir, "A.dll", "LINK https://github.com/acme/a")
        write_module(mods_dir, "B.dll", "LINK https://github.com/acme/b")
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(401)

        result = build_orchestrator(make_client(handler, token="bad"), token="bad").run(mods_dir)

        assert isinstance(result.fatal_error, GitHubAuthenticationError)
        assert not result.succeeded
        assert len(result.outcomes) == 1
        assert result.outcomes[0].status == SyncStatus.ERROR
        assert len(requests) == 1

    def test_rate_limit_exhaustion_stops_run(
        self, make_client, mods_dir: Path, sleeps: list[float]
    ) -> None:
        write_module(mods_dir, "A.dll", "LINK https://github.com/acme/a")
        write_module(mods_dir, "B.dll", "LINK https://github.com/acme/b")
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(403)

        result = build_orchestrator(make_client(handler)).run(mods_dir)

        assert isinstance(result.fatal_error, RateLimitExhaustedError)
        assert len(result.outcomes) == 1
        assert len(requests) == 4
        assert sleeps == [60, 120, 180]

    def test_on_outcome_called_per_module(self, make_client, mods_dir: Path) -> None:
        write_module(mods_dir, "A.dll", "plain")
        write_module(mods_dir, "_B.dll", "plain")
        on_outcome = MagicMock()
        result = build_orchestrator(make_client(github_handler([]))).run(
            mods_dir, on_outcome=on_outcome
        )
        assert [c.args[0] for c in on_outcome.call_args_list] == result.outcomes

    def test_cancel_before_start(self, make_client, mods_dir: Path) -> None:
        write_module(mods_dir, "A.dll", "plain")
        cancel = threading.Event()
        cancel.set()
        result = build_orchestrator(make_client(github_handler([]))).run(
            mods_dir, cancel_event=cancel
        )
        assert result.cancelled
        assert result.outcomes == []
        assert not result.succeeded

    def test_cancel_during_rate_limit_wait(self, mods_dir: Path) -> None:
        """Ctrl+C while waiting on a 403 ends the wait and the run."""
        write_module(mods_dir, "A.dll", "LINK https://github.com/acme/a")
        write_module(mods_dir, "B.dll", "LINK https://github.com/acme/b")
        cancel = threading.Event()
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            cancel.set()
            return httpx.Response(403)

        policy = RetryPolicy(retry_delay_seconds=3600, cancel_event=cancel)
        with GitHubClient(
            UpdaterConfig(), retry_policy=policy, transport=httpx.MockTransport(handler)
        ) as client:
            result = build_orchestrator(client).run(mods_dir, cancel_event=cancel)

        assert result.cancelled
        assert result.fatal_error is None
        assert result.outcomes == []
        assert len(requests) == 1


class TestRunResult:
    """Tests for RunResult."""

    def test_extend_appends_follow_up_pass(self, mods_dir: Path) -> None:
        mods = RunResult(outcomes=[outcome_for(mods_dir, "Foo.dll", SyncStatus.UP_TO_DATE)])
        libraries = RunResult(
            outcomes=[outcome_for(mods_dir, "0Harmony.dll", SyncStatus.UPDATED)],
            cancelled=True,
        )
        mods.extend(libraries)

        assert [o.filename for o in mods.outcomes] == ["Foo.dll", "0Harmony.dll"]
        assert mods.cancelled
        assert not mods.succeeded

    def test_extend_keeps_first_fatal_error(self) -> None:
        first = RateLimitExhaustedError()
        result = RunResult(fatal_error=first)
        result.extend(RunResult(fatal_error=GitHubAuthenticationError()))
        assert result.fatal_error is first


class TestLibraries:
    """Tests for UpdateOrchestrator.update_libraries."""

    def test_updates_present_libraries(self, make_client, mods_dir: Path) -> None:
        libraries = mods_dir.parent / "Libraries"
        libraries.mkdir()
        loader = write_module(libraries, "ResoniteModLoader.dll", "old loader")
        requests: list[httpx.Request] = []
        scanner = FakeScanner()

        result = build_orchestrator(make_client(github_handler(requests)), scanner).update_libraries(
            mods_dir, RESONITE_MOD_LOADER_SOURCE
        )

        assert [(o.filename, o.status) for o in result.outcomes] == [
            ("ResoniteModLoader.dll", SyncStatus.UPDATED)
        ]
        assert result.outcomes[0].source_url == (
            "https://github.com/resonite-modding-group/ResoniteModLoader"
            "/releases/download/v2.0.0/ResoniteModLoader.dll"
        )
        assert loader.read_bytes() == NEW_BUILD
        assert scanner.calls == []

    def test_no_libraries_installed(self, make_client, mods_dir: Path) -> None:
        orchestrator = build_orchestrator(make_client(github_handler([])))
        with pytest.raises(NoModulesFoundError, match="No libraries found"):
            orchestrator.update_libraries(mods_dir, RESONITE_MOD_LOADER_SOURCE)


class TestSummary:
    """Tests for summary and RunResult helpers."""

    def test_counts_and_errors(self, make_client, mods_dir: Path) -> None:
        write_module(mods_dir, "Bad.dll", "BAD")
        write_module(mods_dir, "Foo.dll", "LINK https://github.com/acme/foo")
        orchestrator = build_orchestrator(make_client(github_handler([])))
        result = orchestrator.run(mods_dir)

        counts = result.counts()
        assert counts[SyncStatus.UPDATED] == 1
        assert counts[SyncStatus.ERROR] == 1
        assert [o.filename for o in result.errors] == ["Bad.dll"]

        summary = orchestrator.summary(result)
        assert "Updated: 1" in summary
        assert "Errors: 1" in summary
        assert "Bad.dll" in summary

    def test_empty_result_succeeds(self) -> None:
        assert RunResult().succeeded


class TestFromConfig:
    """Tests for UpdateOrchestrator.from_config."""

    def test_feed_strategy_without_token(self, make_client) -> None:
        client = make_client(github_handler([]))
        orchestrator = UpdateOrchestrator.from_config(UpdaterConfig(dry_run=True), client=client)
        assert orchestrator.dry_run
        assert isinstance(orchestrator._resolver.select_locator(), FeedLocator)
