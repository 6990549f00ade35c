"""One sync run: collect, normalize identifiers, resolve conflicts, distribute.

Each source is isolated: a failure while fetching from or pushing to one
source is recorded in its ``SourceReport`` and never stops the others. The
identity resolver is only touched during normalization, which runs one item
at a time; collection and distribution fan out per source. Sources that
track their own changes skip the fetch for data types they report unchanged,
which are read back from the previous collect snapshot.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from totalrecall.domain.model import (
    DataType,
    Rating,
    Review,
    WatchHistory,
    WatchlistItem,
    has_any_id,
)
from totalrecall.domain.ports.sources import (
    AuthenticationError,
    PartialMutationError,
    SourceError,
    as_cleanup,
    as_incremental_sync,
    as_status_mapping,
)
from totalrecall.domain.reconciliation import ResolutionPolicy, SourceData, resolve_all_conflicts
from totalrecall.domain.time_windows import IncrementalWindow, utcnow

from .distribution import (
    TargetProfile,
    build_removal_lists,
    mark_rated_as_watched,
    prepare_distribution,
)
from .results import DistributionPlan, SyncOptions, SyncResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence

    from totalrecall.domain.identity import IdResolver
    from totalrecall.domain.model import MediaItem
    from totalrecall.domain.ports.sources import IncrementalSync, MediaSource
    from totalrecall.domain.ports.storage import SnapshotStore, TimestampStore
    from totalrecall.domain.reconciliation import ResolvedData
    from totalrecall.domain.time_windows import Clock

    from .results import ProgressCallback, SourceReport

    type Mutation = Callable[[Sequence[object]], Awaitable[None]]

log = getLogger(__name__)

ITEM_TYPES: dict[DataType, type[object]] = {
    DataType.WATCHLIST: WatchlistItem,
    DataType.RATINGS: Rating,
    DataType.REVIEWS: Review,
    DataType.WATCH_HISTORY: WatchHistory,
}


class SyncSetupError(ValueError):
    """Raised before any I/O when sources and resolution policy do not fit together."""


@dataclass(slots=True)
class _Collected:
    data: SourceData
    failed_types: set[DataType] = field(default_factory=set[DataType])


@dataclass(slots=True)
class SyncOrchestrator:
    """Drives one run across every configured source.

    ``sources`` maps source names to adapters; the adapter's ``name`` must
    match its key because collected items are tagged with it.
    """

    sources: Mapping[str, MediaSource]
    resolver: IdResolver
    snapshots: SnapshotStore
    timestamps: TimestampStore
    policy: ResolutionPolicy = field(default_factory=ResolutionPolicy)
    options: SyncOptions = field(default_factory=SyncOptions)
    clock: Clock = utcnow
    progress_callback: ProgressCallback | None = None
    progress: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        validate_setup(self.sources, self.policy)

    async def run(self) -> SyncResult:
        result = SyncResult(started_at=self.clock())
        self.progress = 0
        log.info(
            "Starting sync: sources=%s, data_types=%s, force_full=%s, dry_run=%s",
            ", ".join(self.sources),
            ", ".join(sorted(self.options.data_types)),
            self.options.force_full_sync,
            ", ".join(sorted(self.options.dry_run)) or "-",
        )
        try:
            collected = await self.collect(result)
            if not collected:
                result.errors.append("No source could be collected")
                return result

            await self.normalize(collected, result)
            bridge = self.resolver.cache
            data = {name: entry.data for name, entry in collected.items()}
            resolved = resolve_all_conflicts(data, self.policy, bridge)

            if self.options.mark_rated_as_watched:
                mark_rated_as_watched(resolved, bridge)
            status_sources = [name for name in collected if as_status_mapping(self.sources[name]) is not None]
            removals = build_removal_lists(
                data,
                resolved,
                self.options,
                now=result.started_at,
                status_sources=status_sources,
                bridge=bridge,
            )

            await self.distribute(collected, resolved, removals, result)
            self.timestamps.save()
        finally:
            self.resolver.save_if_dirty()
            await self._cleanup()
            result.finished_at = self.clock()

        log.info(
            "Finished sync in %.1fs: pushed=%s, failures=%s",
            result.duration_seconds,
            result.items_synced,
            result.has_failures,
        )
        return result

    async def collect(self, result: SyncResult) -> dict[str, _Collected]:
        names = list(self.sources)
        outcomes = await asyncio.gather(*(self._collect_source(name, result.report(name)) for name in names))
        return {name: outcome for name, outcome in zip(names, outcomes, strict=True) if outcome is not None}

    async def normalize(self, collected: Mapping[str, _Collected], result: SyncResult) -> None:
        """Complete every item's identifier record through the resolver, then flush the cache."""

        for name, entry in collected.items():
            report = result.report(name)
            data = entry.data
            data.watchlist = await self._resolve_all(data.watchlist)
            data.ratings = await self._resolve_all(data.ratings)
            data.reviews = await self._resolve_all(data.reviews, reverse_lookup=True)

            history = [record for record in data.watch_history if has_any_id(record) or record.title]
            dropped = len(data.watch_history) - len(history)
            if dropped:
                log.warning("%s: dropping %s history entries without ids or title", name, dropped)
                report.skipped += dropped
            data.watch_history = await self._resolve_all(history)

            report.resolved = data.total()
        if self.resolver.save_if_dirty():
            log.info("Saved identity cache with %s record(s)", len(self.resolver.cache))

    async def distribute(
        self,
        collected: Mapping[str, _Collected],
        resolved: ResolvedData,
        removals: Mapping[str, Sequence[WatchlistItem]],
        result: SyncResult,
    ) -> None:
        names = list(collected)
        await asyncio.gather(
            *(
                self._distribute_target(name, collected[name], resolved, removals.get(name, ()), result)
                for name in names
            )
        )

    async def _collect_source(self, name: str, report: SourceReport) -> _Collected | None:
        try:
            return await self._collect_from(name, report)
        except Exception as exc:  # noqa: BLE001
            log.exception("%s: unexpected error while collecting, skipping source", name)
            report.record_error(f"{name}: collection failed: {exc}")
            return None

    async def _collect_from(self, name: str, report: SourceReport) -> _Collected | None:
        source = self.sources[name]
        incremental = as_incremental_sync(source)
        if incremental is not None:
            incremental.set_force_full_sync(self.options.force_full_sync)

        entry = _Collected(data=SourceData())
        if self.options.uses_cache(name):
            self._load_snapshots(name, entry.data)
        else:
            try:
                if not source.is_authenticated():
                    await source.authenticate()
            except SourceError as exc:
                log.warning("%s: authentication failed, skipping source: %s", name, exc)
                report.record_error(f"{name}: authentication failed: {exc}")
                return None
            for data_type in self._data_types():
                items = self._unchanged_snapshot(name, incremental, data_type)
                if items is None:
                    try:
                        items = await _fetch(source, data_type)
                    except SourceError as exc:
                        log.warning("%s: fetching %s failed: %s", name, data_type, exc)
                        report.record_error(f"{name}: fetching {data_type} failed: {exc}")
                        entry.failed_types.add(data_type)
                        continue
                    except Exception as exc:  # noqa: BLE001
                        log.exception("%s: unexpected error fetching %s", name, data_type)
                        report.record_error(f"{name}: fetching {data_type} failed: {exc}")
                        entry.failed_types.add(data_type)
                        continue
                    self._save_collect(name, data_type, items, report)
                _assign(entry.data, data_type, items)

        report.fetched = entry.data.total()
        self._advance(f"collect:{name}", report.fetched)
        log.info("%s: collected %s", name, _describe(entry.data))
        return entry

    def _unchanged_snapshot(
        self,
        name: str,
        incremental: IncrementalSync | None,
        data_type: DataType,
    ) -> Sequence[object] | None:
        """The last collected ``data_type`` when the source reports no change since that run."""

        if incremental is None or self.options.force_full_sync:
            return None
        if not incremental.supports_native_incremental_sync() or incremental.changed_since_last_run(data_type):
            return None
        items = self.snapshots.load_collect(name, data_type, ITEM_TYPES[data_type])
        if items is None:
            log.debug("%s: %s unchanged but no snapshot on disk; fetching", name, data_type)
            return None
        log.info("%s: %s unchanged since the last run; reusing %s cached item(s)", name, data_type, len(items))
        return items

    def _save_collect(self, name: str, data_type: DataType, items: Sequence[object], report: SourceReport) -> None:
        try:
            self.snapshots.save_collect(name, data_type, items)
        except OSError as exc:
            log.warning("%s: could not write the %s snapshot: %s", name, data_type, exc)
            report.record_error(f"{name}: writing {data_type} snapshot failed: {exc}")

    def _load_snapshots(self, name: str, data: SourceData) -> None:
        for data_type in self._data_types():
            items = self.snapshots.load_collect(name, data_type, ITEM_TYPES[data_type])
            if items is None:
                log.warning("%s: no cached %s snapshot; treating it as empty", name, data_type)
                continue
            _assign(data, data_type, items)

    async def _resolve_all[T: MediaItem](self, items: Sequence[T], *, reverse_lookup: bool = False) -> list[T]:
        resolved: list[T] = []
        for item in items:
            resolved.append(await self.resolver.resolve_item(item, reverse_lookup=reverse_lookup))
            self._advance("normalize", 1)
        return resolved

    async def _distribute_target(
        self,
        name: str,
        entry: _Collected,
        resolved: ResolvedData,
        removal_list: Sequence[WatchlistItem],
        result: SyncResult,
    ) -> None:
        source = self.sources[name]
        report = result.report(name)
        profile = TargetProfile.of(source, name, force_full_sync=self.options.force_full_sync)

        def window_for(data_type: DataType) -> IncrementalWindow:
            if self.options.force_full_sync:
                return IncrementalWindow()
            return IncrementalWindow(self.timestamps.get_last_sync(name, data_type))

        plan = prepare_distribution(
            profile,
            resolved,
            entry.data,
            self.options,
            window_for=window_for,
            removal_list=removal_list,
            bridge=self.resolver.cache,
        )
        report.skipped += len(plan.excluded)

        if self.options.is_dry_run(name):
            self._write_dry_run(name, plan, report)
            return

        failed_types = set(entry.failed_types)
        try:
            if not plan.is_empty() and not source.is_authenticated():
                await source.authenticate()
            failed_types |= await self._push(source, plan, report, skip=entry.failed_types)
        except SourceError as exc:
            log.warning("%s: distribution aborted: %s", name, exc)
            report.record_error(f"{name}: distribution failed: {exc}", failed=plan.pending())
            return
        except Exception as exc:  # noqa: BLE001
            log.exception("%s: unexpected error during distribution", name)
            report.record_error(f"{name}: distribution failed: {exc}", failed=plan.pending())
            return

        for data_type in self._data_types():
            if data_type not in failed_types:
                self.timestamps.set_last_sync(name, data_type, result.started_at)

    async def _push(
        self,
        source: MediaSource,
        plan: DistributionPlan,
        report: SourceReport,
        *,
        skip: set[DataType],
    ) -> set[DataType]:
        """Run the plan's mutations in order; return the data types that did not fully apply."""

        steps: list[tuple[DataType, str, Mutation, Sequence[object]]] = [
            (DataType.WATCHLIST, "watchlist", source.add_to_watchlist, plan.watchlist),
            (DataType.WATCHLIST, "watchlist_to_history", source.add_watch_history, plan.watchlist_to_history),
            (DataType.WATCHLIST, "removal_list", source.remove_from_watchlist, plan.removal_list),
            (DataType.RATINGS, "ratings", source.set_ratings, plan.ratings),
            (DataType.REVIEWS, "reviews", source.set_reviews, plan.reviews),
            (DataType.WATCH_HISTORY, "watch_history", source.add_watch_history, plan.watch_history),
        ]
        failed: set[DataType] = set()
        for data_type, section, mutate, items in steps:
            if not items:
                continue
            if data_type in skip:
                log.info("%s: not pushing %s; its current %s are unknown", plan.target, section, data_type)
                report.skipped += len(items)
                continue
            try:
                await mutate(items)
            except PartialMutationError as exc:
                log.warning("%s: %s of %s %s item(s) failed", plan.target, exc.failed, exc.total, section)
                report.pushed += exc.total - exc.failed
                report.record_error(f"{plan.target}: {section}: {exc}", failed=exc.failed)
                failed.add(data_type)
            except AuthenticationError:
                raise
            except SourceError as exc:
                log.warning("%s: pushing %s failed: %s", plan.target, section, exc)
                report.record_error(f"{plan.target}: {section}: {exc}", failed=len(items))
                failed.add(data_type)
            else:
                report.pushed += len(items)
                log.info("%s: pushed %s %s item(s)", plan.target, len(items), section)
            self._advance(f"distribute:{plan.target}", len(items))
        return failed

    def _write_dry_run(self, name: str, plan: DistributionPlan, report: SourceReport) -> None:
        report.dry_run = True
        self.snapshots.clear_distribute(name)
        for section, items in plan.sections().items():
            self.snapshots.save_distribute(name, section, items)
        report.skipped += plan.pending()
        log.info("%s: dry run, wrote %s pending change(s) instead of pushing", name, plan.pending())

    async def _cleanup(self) -> None:
        for name, source in self.sources.items():
            cleanup = as_cleanup(source)
            if cleanup is None:
                continue
            try:
                await cleanup.cleanup()
            except Exception as exc:  # noqa: BLE001
                log.warning("%s: cleanup failed: %s", name, exc)

    def _data_types(self) -> list[DataType]:
        return [data_type for data_type in DataType if self.options.syncs(data_type)]

    def _advance(self, stage: str, count: int) -> None:
        if count <= 0:
            return
        self.progress += count
        if self.progress_callback is not None:
            self.progress_callback(stage, self.progress)


def validate_setup(sources: Mapping[str, MediaSource], policy: ResolutionPolicy) -> None:
    if policy.timestamp_tolerance_seconds < 0:
        raise SyncSetupError("timestamp_tolerance_seconds must not be negative")
    if not policy.source_preference:
        raise SyncSetupError("source_preference must name at least one source")
    unknown = [name for name in policy.source_preference if name not in sources]
    if unknown:
        raise SyncSetupError(f"source_preference references unknown or disabled source(s): {', '.join(unknown)}")
    for name, source in sources.items():
        if source.name != name:
            raise SyncSetupError(f"source registered as {name!r} reports its name as {source.name!r}")


async def _fetch(source: MediaSource, data_type: DataType) -> Sequence[MediaItem]:
    match data_type:
        case DataType.WATCHLIST:
            return await source.get_watchlist()
        case DataType.RATINGS:
            return await source.get_ratings()
        case DataType.REVIEWS:
            return await source.get_reviews()
        case DataType.WATCH_HISTORY:
            return await source.get_watch_history()


def _assign(data: SourceData, data_type: DataType, items: Sequence[object]) -> None:
    match data_type:
        case DataType.WATCHLIST:
            data.watchlist = [item for item in items if isinstance(item, WatchlistItem)]
        case DataType.RATINGS:
            data.ratings = [item for item in items if isinstance(item, Rating)]
        case DataType.REVIEWS:
            data.reviews = [item for item in items if isinstance(item, Review)]
        case DataType.WATCH_HISTORY:
            data.watch_history = [item for item in items if isinstance(item, WatchHistory)]


def _describe(data: SourceData) -> str:
    return ", ".join(f"{data_type}={count}" for data_type, count in data.counts().items())


__all__ = ["ITEM_TYPES", "SyncOrchestrator", "SyncSetupError", "validate_setup"]
