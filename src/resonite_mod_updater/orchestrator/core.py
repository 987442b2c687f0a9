"""
Orchestrator Core - run the update pipeline over a mods folder.

Each module goes through link extraction, source resolution, artifact
location and synchronization, and ends in exactly one SyncOutcome.
"""

import logging
import threading
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from resonite_mod_updater.core.config import UpdaterConfig
from resonite_mod_updater.core.exceptions import (
    ArtifactNotFoundError,
    ConfigurationError,
    InvalidLinkError,
    ModuleParseError,
    NoModulesFoundError,
    RunCancelledError,
    UpdaterError,
    format_exception,
    is_fatal_error,
)
from resonite_mod_updater.core.models import LocalModule, SyncOutcome, SyncStatus
from resonite_mod_updater.github.client import GitHubClient
from resonite_mod_updater.github.resolver import SourceResolver
from resonite_mod_updater.metadata.scanner import LinkExtractor, MetadataScanner
from resonite_mod_updater.sync.synchronizer import ArtifactSynchronizer

logger = logging.getLogger(__name__)

MODULE_PATTERN = "*.dll"


@dataclass(frozen=True)
class LibraryTarget:
    """A loader library kept next to the mods folder."""

    folder: str
    filename: str


LIBRARY_TARGETS = (
    LibraryTarget(folder="Libraries", filename="ResoniteModLoader.dll"),
    LibraryTarget(folder="rml_libs", filename="0Harmony.dll"),
)


@dataclass
class RunResult:
    """Result of one pass over a set of modules."""

    dry_run: bool = False
    outcomes: list[SyncOutcome] = field(default_factory=list)
    fatal_error: UpdaterError | None = None
    cancelled: bool = False

    @property
    def errors(self) -> list[SyncOutcome]:
        """Outcomes that captured an error, for the end-of-run report."""
        return [outcome for outcome in self.outcomes if outcome.is_error()]

    @property
    def succeeded(self) -> bool:
        """True if every module was attempted and no fatal error occurred."""
        return self.fatal_error is None and not self.cancelled

    def extend(self, other: "RunResult") -> None:
        """Append the outcomes and stop reason of a follow-up pass."""
        self.outcomes.extend(other.outcomes)
        self.fatal_error = self.fatal_error or other.fatal_error
        self.cancelled = self.cancelled or other.cancelled

    def counts(self) -> dict[SyncStatus, int]:
        """Number of outcomes per status."""
        counter = Counter(outcome.status for outcome in self.outcomes)
        return {status: counter.get(status, 0) for status in SyncStatus}


class UpdateOrchestrator:
    """
    Update pipeline over a mods folder.

    Modules are processed one at a time in path order so that output is
    reproducible. Module-scoped failures become ERROR outcomes and the batch
    continues; authentication failures and rate-limit exhaustion stop it.
    """

    def __init__(
        self,
        scanner: LinkExtractor,
        resolver: SourceResolver,
        synchronizer: ArtifactSynchronizer,
    ):
        """Initialize orchestrator with the pipeline stages."""
        self._scanner = scanner
        self._resolver = resolver
        self._synchronizer = synchronizer

    @classmethod
    def from_config(
        cls,
        config: UpdaterConfig,
        client: GitHubClient | None = None,
    ) -> "UpdateOrchestrator":
        """Build the standard pipeline for a configuration."""
        client = client or GitHubClient(config)
        return cls(
            scanner=MetadataScanner(),
            resolver=SourceResolver(client, token=config.token),
            synchronizer=ArtifactSynchronizer(client, dry_run=config.dry_run),
        )

    @property
    def dry_run(self) -> bool:
        return self._synchronizer.dry_run

    def discover_modules(self, mods_dir: Path) -> list[LocalModule]:
        """
        List the modules of a folder, sorted by path.

        Raises:
            ConfigurationError: If the folder does not exist
        """
        if not mods_dir.is_dir():
            raise ConfigurationError(
                f"Mods folder does not exist: {mods_dir}",
                config_key="mods_folder",
                details={"mods_folder": str(mods_dir)},
            )
        paths = sorted(p for p in mods_dir.glob(MODULE_PATTERN) if p.is_file())
        return [LocalModule(path=p.absolute()) for p in paths]

    def process_module(self, module: LocalModule, link: str | None = None) -> SyncOutcome:
        """
        Run one module through the pipeline.

        Args:
            module: Local module to check
            link: Upstream link to use instead of extracting one

        Returns:
            The module's outcome

        Raises:
            GitHubAuthenticationError: If the token is rejected
            RateLimitExhaustedError: If rate-limit retries run out
        """
        if module.ignored:
            return self._outcome(module, SyncStatus.IGNORED)

        if link is None:
            try:
                link = self._scanner.extract_link(module.read_bytes())
            except (ModuleParseError, OSError) as e:
                logger.warning(f"{module.filename}: {format_exception(e)}")
                return self._error_outcome(module, e)
            if link is None:
                return self._outcome(module, SyncStatus.NO_LINK_FOUND)

        try:
            artifact = self._resolver.resolve(link, module.filename)
        except InvalidLinkError as e:
            return self._outcome(
                module,
                SyncStatus.INVALID_LINK,
                error_message=format_exception(e),
                attempted_url=link,
            )
        except ArtifactNotFoundError as e:
            return self._outcome(
                module,
                SyncStatus.NO_LINK_FOUND,
                error_message=format_exception(e),
                attempted_url=link,
            )
        except UpdaterError as e:
            if is_fatal_error(e):
                raise
            logger.warning(f"{module.filename}: {format_exception(e)}")
            return self._error_outcome(module, e, attempted_url=link)

        return self._synchronizer.synchronize(artifact, module.path)

    def run(
        self,
        mods_dir: Path,
        on_outcome: Callable[[SyncOutcome], None] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RunResult:
        """
        Update every module in a folder.

        Args:
            mods_dir: Folder holding the mod assemblies
            on_outcome: Optional callback after each module
            cancel_event: Stops the run before the next module when set

        Returns:
            RunResult with one outcome per processed module

        Raises:
            ConfigurationError: If the folder does not exist
            NoModulesFoundError: If the folder holds no modules
        """
        modules = self.discover_modules(mods_dir)
        if not modules:
            raise NoModulesFoundError(mods_folder=str(mods_dir))

        logger.info(f"Found {len(modules)} mods in {mods_dir}")
        return self._execute([(module, None) for module in modules], on_outcome, cancel_event)

    def update_libraries(
        self,
        mods_dir: Path,
        source_url: str,
        on_outcome: Callable[[SyncOutcome], None] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RunResult:
        """
        Update ResoniteModLoader and Harmony from the library source.

        Libraries live in sibling folders of the mods folder. Missing
        library files are skipped.

        Raises:
            NoModulesFoundError: If none of the libraries is installed
        """
        game_dir = mods_dir.absolute().parent
        items: list[tuple[LocalModule, str | None]] = []
        for target in LIBRARY_TARGETS:
            path = game_dir / target.folder / target.filename
            if not path.is_file():
                logger.info(f"{target.filename} not found. Skipping..")
                continue
            items.append((LocalModule(path=path), source_url))

        if not items:
            raise NoModulesFoundError(
                "No libraries found to update",
                mods_folder=str(mods_dir),
            )
        return self._execute(items, on_outcome, cancel_event)

    def _execute(
        self,
        items: list[tuple[LocalModule, str | None]],
        on_outcome: Callable[[SyncOutcome], None] | None,
        cancel_event: threading.Event | None,
    ) -> RunResult:
        """Process modules sequentially, stopping on fatal errors."""
        result = RunResult(dry_run=self.dry_run)

        for module, link in items:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Run cancelled before all modules were processed")
                result.cancelled = True
                break

            try:
                outcome = self.process_module(module, link)
            except RunCancelledError:
                logger.warning(f"Run cancelled while processing {module.filename}")
                result.cancelled = True
                break
            except UpdaterError as e:
                if is_fatal_error(e):
                    result.fatal_error = e
                outcome = self._error_outcome(module, e, attempted_url=link)
            except Exception as e:
                # Wrap unexpected exceptions
                logger.exception(f"{module.filename}: unexpected error")
                outcome = self._error_outcome(module, e, attempted_url=link)

            result.outcomes.append(outcome)
            if on_outcome:
                on_outcome(outcome)

            if result.fatal_error is not None:
                logger.error(f"Stopping run: {format_exception(result.fatal_error)}")
                break

        return result

    def summary(self, result: RunResult) -> str:
        """Generate a human-readable summary of a run."""
        counts = result.counts()
        lines = [
            f"Mode: {'dry run' if result.dry_run else 'update'}",
            f"Modules: {len(result.outcomes)}",
            f"Updated: {counts[SyncStatus.UPDATED]}",
            f"Up to date: {counts[SyncStatus.UP_TO_DATE]}",
            f"No link: {counts[SyncStatus.NO_LINK_FOUND]}",
            f"Invalid link: {counts[SyncStatus.INVALID_LINK]}",
            f"Ignored: {counts[SyncStatus.IGNORED]}",
            f"Errors: {counts[SyncStatus.ERROR]}",
        ]

        for outcome in result.errors:
            lines.append(f"  ✗ {outcome.filename}: {outcome.error_message}")
            if outcome.attempted_url:
                lines.append(f"      URL: {outcome.attempted_url}")

        if result.fatal_error is not None:
            lines.append(f"Stopped: {format_exception(result.fatal_error)}")
        elif result.cancelled:
            lines.append("Stopped: cancelled")

        return "\n".join(lines)

    def _outcome(self, module: LocalModule, status: SyncStatus, **fields) -> SyncOutcome:
        return SyncOutcome(
            filename=module.filename,
            path=module.path,
            status=status,
            dry_run=self.dry_run,
            **fields,
        )

    def _error_outcome(
        self,
        module: LocalModule,
        error: BaseException,
        attempted_url: str | None = None,
    ) -> SyncOutcome:
        return self._outcome(
            module,
            SyncStatus.ERROR,
            error_message=format_exception(error),
            error_type=type(error).__name__,
            attempted_url=attempted_url,
        )
