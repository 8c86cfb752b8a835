"""
Decision surface used by the UI layer: feed uploads, audits and reports.

All state lives on an explicit AuditContext; there are no module globals.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .connectors.datastore import InMemoryDatastore, VehicleDatastore, create_datastore
from .connectors.file_reader import FeedSource, PandasFileReader, TabularFileReader
from .exceptions import FlushFailed, InputError, PersistenceUnavailable, UnsupportedFormat
from .exporters.report_projection import ReportExporter
from .models import (
    AuditOutcome,
    FeedWarning,
    ReportFilter,
    SourceKind,
    VehicleFragment,
    VehicleRecord,
    WarningCategory
)
from .processors.audit_history import AuditHistory
from .processors.audit_session import AuditSession
from .processors.normalizer import FeedNormalizer
from .processors.qr_payload import JsonQrPayloadEncoder, QrPayloadEncoder
from .processors.reconciliation import Reconciler
from .processors.vehicle_store import VehicleStore


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FeedUpload:
    """
    One feed to ingest.

    ``source`` is either a file (path, bytes or file object) for the reader,
    or rows that were already parsed.
    """
    source_kind: SourceKind
    source: Union[FeedSource, List[Dict[str, Any]]]
    skip_rows: int = 0
    file_format: Optional[str] = None


@dataclass
class AuditContext:
    """Everything one application session operates on."""
    datastore: VehicleDatastore = field(default_factory=InMemoryDatastore)
    store: VehicleStore = field(default_factory=VehicleStore)
    history: AuditHistory = field(default_factory=AuditHistory)
    reader: TabularFileReader = field(default_factory=PandasFileReader)
    normalizer: FeedNormalizer = field(default_factory=FeedNormalizer)
    qr_encoder: QrPayloadEncoder = field(default_factory=JsonQrPayloadEncoder)
    clock: Callable[[], datetime] = _utc_now
    reconciler: Optional[Reconciler] = None
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def __post_init__(self):
        if self.reconciler is None:
            self.reconciler = Reconciler(clock=self.clock)


class AuditService:
    """
    Operations the UI invokes.

    Only feed merges write to the vehicle store, one at a time. A merge is
    applied to the context only after the whole batch was read, normalized
    and saved.
    """

    def __init__(self, context: Optional[AuditContext] = None):
        self.context = context or AuditContext()
        self.logger = logging.getLogger(self.__class__.__name__)
        self.exporter = ReportExporter()

    @classmethod
    def from_config(cls, config) -> 'AuditService':
        """Build a service wired to the configured datastore and feed mappings."""
        context = AuditContext(
            datastore=create_datastore(config),
            normalizer=FeedNormalizer(config.feeds.column_aliases()),
            qr_encoder=JsonQrPayloadEncoder(prefix=config.audit.qr_prefix)
        )
        return cls(context)

    @property
    def store(self) -> VehicleStore:
        return self.context.store

    @property
    def history(self) -> AuditHistory:
        return self.context.history

    async def load(self) -> None:
        """
        Replace in-memory state with what the datastore holds.

        Raises:
            PersistenceUnavailable: State is left untouched
        """
        vehicles = await self.context.datastore.load_vehicles()
        outcomes = await self.context.datastore.load_outcomes(ReportFilter.ALL)

        self.context.store = VehicleStore(vehicles)
        self.context.history = AuditHistory(outcomes)
        self.logger.info(f"Loaded {len(vehicles)} vehicle(s) and {len(outcomes)} outcome(s)")

    async def read_feeds(
        self,
        feeds: Sequence[FeedUpload]
    ) -> Tuple[List[VehicleFragment], List[FeedWarning]]:
        """Read and normalize every feed. Input errors become warnings."""
        fragments: List[VehicleFragment] = []
        warnings: List[FeedWarning] = []

        for feed in feeds:
            if isinstance(feed.source, list):
                rows = feed.source
            else:
                try:
                    rows = await asyncio.to_thread(
                        self.context.reader.read,
                        feed.source,
                        feed.skip_rows,
                        feed.file_format
                    )
                except InputError as e:
                    category = (
                        WarningCategory.UNSUPPORTED_FORMAT
                        if isinstance(e, UnsupportedFormat)
                        else WarningCategory.UNREADABLE_FILE
                    )
                    warning = FeedWarning(
                        source_kind=feed.source_kind,
                        category=category,
                        reason=str(e)
                    )
                    self.logger.warning(str(warning))
                    warnings.append(warning)
                    continue

            feed_fragments, feed_warnings = self.context.normalizer.normalize(
                rows, feed.source_kind
            )
            fragments.extend(feed_fragments)
            warnings.extend(feed_warnings)

        return fragments, warnings

    async def normalize_and_merge(
        self,
        feeds: Sequence[FeedUpload]
    ) -> Tuple[VehicleStore, List[FeedWarning]]:
        """
        Ingest a batch of feeds and persist the merged store.

        Returns:
            Tuple of (updated store, warnings)

        Raises:
            FlushFailed: Saving failed; the exception carries the merged store
                and warnings, and the context keeps its previous store
        """
        async with self.context.write_lock:
            fragments, warnings = await self.read_feeds(feeds)

            merged = self.context.reconciler.merge(self.context.store, fragments)

            if merged == self.context.store:
                self.logger.info("Batch changed no vehicle records; nothing to save")
                return self.context.store, warnings

            try:
                await self.context.datastore.save_vehicles(merged.all())
            except PersistenceUnavailable as e:
                self.logger.error(f"Merged store not saved: {e}")
                raise FlushFailed(e.reason or str(e), merged, warnings) from e

            self.context.store = merged
            self.logger.info(
                f"Merged {len(fragments)} fragment(s) into {len(merged)} vehicle(s), "
                f"{len(warnings)} warning(s)"
            )
            return merged, warnings

    async def flush(self, store: VehicleStore) -> VehicleStore:
        """Retry saving a store returned by a failed merge."""
        async with self.context.write_lock:
            await self.context.datastore.save_vehicles(store.all())
            self.context.store = store
            return store

    def lookup(self, plate: str) -> VehicleRecord:
        return self.context.store.lookup(plate)

    def begin_audit(self, plate: str, auditor_identity: str) -> AuditSession:
        """
        Start an audit of the vehicle with the given plate.

        Raises:
            VehicleNotFound: If the plate is not in the store
        """
        return AuditSession.begin(
            self.context.store,
            plate,
            auditor_identity,
            qr_encoder=self.context.qr_encoder,
            outcome_sink=self._record_outcome,
            clock=self.context.clock
        )

    async def approve(self, session: AuditSession) -> AuditOutcome:
        return await session.approve()

    def block(self, session: AuditSession) -> AuditSession:
        session.block()
        return session

    async def submit_problem(self, session: AuditSession, text: str) -> AuditOutcome:
        return await session.submit_problem(text)

    def cancel(self, session: AuditSession) -> None:
        session.cancel()

    def export_report(
        self,
        report_filter: ReportFilter = ReportFilter.ALL
    ) -> List[Dict[str, Any]]:
        """Report rows for the decisions recorded so far."""
        return self.exporter.project(self.context.store, self.context.history, report_filter)

    async def close(self) -> None:
        await self.context.datastore.close()

    async def _record_outcome(self, outcome: AuditOutcome) -> None:
        await self.context.datastore.append_outcome(outcome)
        self.context.history.append(outcome)
