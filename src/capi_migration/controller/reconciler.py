"""Reconciliation host driving cluster migrations.

One pass over a cluster decides what to do from its derived phase:

1. Migrated: run the readiness-gated cleanup.
2. Migrating: wait for the new control plane.
3. Otherwise: prepare and trigger the migration.

Failures never escape a pass. They are logged and turned into a requeue
delay; fatal errors get a longer delay and are flagged for an operator.
"""

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass

from capi_migration import __version__, keys
from capi_migration.client.exceptions import (
    CAPIMigrationError,
    is_retryable,
    requires_intervention,
)
from capi_migration.client.objects import Resource, get_path, labels_of, name_of
from capi_migration.client.store import ResourceStore
from capi_migration.config import MigrationSettings
from capi_migration.migration.base import MigrationPhase, Migrator
from capi_migration.migration.cleanup import CleanupResult
from capi_migration.migration.factory import MigratorFactory
from capi_migration.utils.logging import bind_cluster, get_logger, log_error, unbind_cluster

logger = get_logger(__name__)


def version_selector(version: str = __version__) -> dict[str, str]:
    return {keys.MIGRATION_VERSION_LABEL: version}


def is_selected(cluster: Resource, version: str = __version__) -> bool:
    """Clusters are migrated by the release labelled on them, and only that release."""
    return labels_of(cluster).get(keys.MIGRATION_VERSION_LABEL) == version


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass.

    Attributes:
        cluster_id: Cluster the pass ran for
        phase: Phase observed at the start of the pass, if it got that far
        requeue_after: Seconds until the cluster should be reconciled again,
            None when nothing is left to do
        cleanup: What cleanup deleted, when cleanup ran
        error: The failure that ended the pass early
    """

    cluster_id: str
    phase: MigrationPhase | None = None
    requeue_after: float | None = None
    cleanup: CleanupResult | None = None
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.error is None


class ClusterReconciler:
    """Runs reconciliation passes, at most one in flight per cluster."""

    def __init__(
        self,
        factory: MigratorFactory,
        management: ResourceStore,
        settings: MigrationSettings | None = None,
        version: str = __version__,
    ):
        self.factory = factory
        self.management = management
        self.settings = settings or MigrationSettings()
        self.version = version
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._due: dict[str, float] = {}
        self._shutdown_event = asyncio.Event()

    async def reconcile(self, cluster_id: str) -> ReconcileResult:
        """Run one pass for ``cluster_id``; concurrent calls for the same ID queue up."""
        async with self._locks[cluster_id]:
            bind_cluster(cluster_id)
            try:
                return await self._reconcile(cluster_id)
            finally:
                unbind_cluster()

    async def _reconcile(self, cluster_id: str) -> ReconcileResult:
        result = ReconcileResult(cluster_id=cluster_id)
        migrator: Migrator | None = None
        try:
            migrator = await self.factory.new_migrator(cluster_id)
            await self._drive(migrator, result)
        except CAPIMigrationError as e:
            result.error = e
            result.requeue_after = self._requeue_delay(e)
            self._log_failure(e, result)
        except Exception as e:
            # Errors outside the migration error tree still end the pass with a requeue.
            result.error = e
            result.requeue_after = self.settings.requeue_after
            log_error(logger, e, "reconcile", requeue_after=result.requeue_after)
        finally:
            if migrator is not None:
                await migrator.close()
        return result

    async def _drive(self, migrator: Migrator, result: ReconcileResult) -> None:
        if await migrator.is_migrated():
            result.phase = MigrationPhase.MIGRATED
            logger.debug("cluster_already_migrated")
            result.cleanup = await migrator.cleanup()
            if result.cleanup.done:
                result.phase = MigrationPhase.CLEANED_UP
                logger.info("cluster_migration_complete")
            else:
                result.requeue_after = self.settings.requeue_after
            return

        if await migrator.is_migrating():
            result.phase = MigrationPhase.MIGRATING
            logger.debug("cluster_migration_in_progress")
            result.requeue_after = self.settings.requeue_after
            return

        result.phase = MigrationPhase.NOT_STARTED
        logger.info("preparing_cluster_migration")
        await migrator.prepare()
        logger.info("triggering_cluster_migration")
        await migrator.trigger_migration()
        result.requeue_after = self.settings.requeue_after

    def _requeue_delay(self, error: Exception) -> float:
        if requires_intervention(error):
            return self.settings.fatal_requeue_after
        return self.settings.requeue_after

    def _log_failure(self, error: Exception, result: ReconcileResult) -> None:
        if is_retryable(error):
            logger.info(
                "reconcile_not_ready",
                reason=str(error),
                error_type=type(error).__name__,
                requeue_after=result.requeue_after,
            )
        elif requires_intervention(error):
            log_error(logger, error, "reconcile", alert=True, requeue_after=result.requeue_after)
        else:
            log_error(logger, error, "reconcile", requeue_after=result.requeue_after)

    # Periodic loop

    async def selected_clusters(self) -> list[str]:
        """IDs of clusters labelled for this release and not being deleted."""
        clusters = await self.management.list(
            "Cluster", self.settings.namespace, labels=version_selector(self.version)
        )
        return [
            name_of(cluster)
            for cluster in clusters
            if is_selected(cluster, self.version)
            and not get_path(cluster, "metadata.deletionTimestamp")
        ]

    def _is_due(self, cluster_id: str, now: float) -> bool:
        return self._due.get(cluster_id, 0.0) <= now

    def _forget_unselected(self, selected: set[str]) -> None:
        """Drop schedule and lock entries of clusters no longer selected; held locks stay."""
        for cluster_id in self._due.keys() - selected:
            del self._due[cluster_id]
        for cluster_id in self._locks.keys() - selected:
            if not self._locks[cluster_id].locked():
                del self._locks[cluster_id]

    async def _reconcile_bounded(
        self, cluster_id: str, semaphore: asyncio.Semaphore
    ) -> ReconcileResult:
        async with semaphore:
            result = await self.reconcile(cluster_id)
        if result.requeue_after is None:
            self._due[cluster_id] = time.monotonic() + self.settings.reconcile_interval
        else:
            self._due[cluster_id] = time.monotonic() + result.requeue_after
        return result

    async def reconcile_all(self) -> list[ReconcileResult]:
        """Reconcile every selected cluster whose requeue delay has passed."""
        selected = await self.selected_clusters()
        self._forget_unselected(set(selected))
        now = time.monotonic()
        cluster_ids = [c for c in selected if self._is_due(c, now)]
        if not cluster_ids:
            return []

        semaphore = asyncio.Semaphore(self.settings.max_concurrent_clusters)
        results = await asyncio.gather(
            *(self._reconcile_bounded(cluster_id, semaphore) for cluster_id in cluster_ids)
        )
        logger.info(
            "reconcile_cycle_finished",
            clusters=len(results),
            failed=sum(1 for r in results if not r.success),
        )
        return list(results)

    async def run(self) -> None:
        """Reconcile selected clusters until :meth:`shutdown` is called."""
        logger.info(
            "reconciler_started",
            version=self.version,
            namespace=self.settings.namespace,
            interval=self.settings.reconcile_interval,
        )
        while not self._shutdown_event.is_set():
            try:
                await self.reconcile_all()
            except CAPIMigrationError as e:
                log_error(logger, e, "list_clusters")
            except Exception as e:
                log_error(logger, e, "reconcile_all")

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=min(self.settings.requeue_after, self.settings.reconcile_interval),
                )
            except TimeoutError:
                pass
        logger.info("reconciler_stopped")

    def shutdown(self) -> None:
        logger.info("reconciler_shutdown_requested")
        self._shutdown_event.set()
