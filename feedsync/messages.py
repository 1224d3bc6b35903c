import dataclasses
import datetime
import typing

from feedsync import enums as feedsync_enums


@dataclasses.dataclass
class CatalogRecord:
    upc: str
    name: str = ''
    brand: str = ''
    category: str = ''
    description: str = ''
    manufacturer_part_number: str = ''
    source: str = ''
    id: typing.Optional[int] = None


@dataclasses.dataclass
class InventoryRecord:
    vendor_sku: str
    quantity_available: int
    upc: str = ''
    source_id: typing.Optional[int] = None
    last_updated: typing.Optional[datetime.datetime] = None
    id: typing.Optional[int] = None


@dataclasses.dataclass
class InventoryQuantityUpdate:
    id: int
    quantity_available: int
    last_updated: datetime.datetime


@dataclasses.dataclass
class RowError:
    line_number: int
    reason: feedsync_enums.RowErrorReason
    values: typing.List[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class ParseResult:
    records: list = dataclasses.field(default_factory=list)
    errors: typing.List[RowError] = dataclasses.field(default_factory=list)

    @property
    def malformed_count(self) -> int:
        return sum(1 for error in self.errors if error.reason == feedsync_enums.RowErrorReason.MALFORMED)

    @property
    def missing_required_count(self) -> int:
        return sum(1 for error in self.errors if error.reason == feedsync_enums.RowErrorReason.MISSING_REQUIRED)


@dataclasses.dataclass
class DiffStats:
    total_lines: int = 0
    changed_lines: int = 0
    added_lines: int = 0
    removed_lines: int = 0


@dataclasses.dataclass
class DiffResult:
    changed_lines: typing.List[str]
    has_changes: bool
    stats: DiffStats


@dataclasses.dataclass
class SyncStats:
    total_records: int = 0
    records_updated: int = 0
    records_added: int = 0
    records_skipped: int = 0
    records_errors: int = 0


@dataclasses.dataclass
class SyncResult:
    success: bool
    message: str
    stats: SyncStats = dataclasses.field(default_factory=SyncStats)
    error: typing.Optional[str] = None


@dataclasses.dataclass
class RemoteConfig:
    protocol: feedsync_enums.FeedProtocol
    host: str
    username: str
    password: str
    remote_path: str
    port: typing.Optional[int] = None

    def __repr__(self) -> str:
        return 'RemoteConfig(protocol={}, host={}, port={}, username={}, remote_path={})'.format(
            self.protocol.value, self.host, self.port, self.username, self.remote_path
        )


@dataclasses.dataclass
class ScheduleSettings:
    catalog_sync_enabled: bool = True
    catalog_sync_time: typing.Optional[str] = None
    inventory_sync_enabled: bool = True
    inventory_sync_interval_minutes: typing.Optional[int] = None


@dataclasses.dataclass
class JobRunState:
    job_type: feedsync_enums.JobType
    status: feedsync_enums.JobStatus = feedsync_enums.JobStatus.IDLE
    last_run_at: typing.Optional[datetime.datetime] = None
    stats: SyncStats = dataclasses.field(default_factory=SyncStats)
    last_error: typing.Optional[str] = None


@dataclasses.dataclass
class SourceInfo:
    id: int
    slug: str
    name: str
    catalog_column_map: typing.Optional[typing.Dict] = None
    inventory_column_map: typing.Optional[typing.Dict] = None
    schedule: ScheduleSettings = dataclasses.field(default_factory=ScheduleSettings)


@dataclasses.dataclass
class PriorityCacheEntry:
    source: str
    priority: int
    age_seconds: float


@dataclasses.dataclass
class PriorityCacheStats:
    size: int
    entries: typing.List[PriorityCacheEntry] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class PriorityConsistencyReport:
    is_valid: bool
    total_sources: int
    issues: typing.List[str] = dataclasses.field(default_factory=list)
    recommendations: typing.List[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class PriorityFixResult:
    success: bool
    message: str
    sources_updated: int = 0
