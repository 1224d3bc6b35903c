import dataclasses
import itertools
import threading
import typing

from feedsync import enums as feedsync_enums
from feedsync import messages as feedsync_messages
from feedsync.integrations.clients.feeds import exceptions as feeds_exceptions


class FakeCatalogStore(object):
    def __init__(self, records: typing.Iterable[feedsync_messages.CatalogRecord] = ()):
        self._ids = itertools.count(1)
        self.records: typing.Dict[str, feedsync_messages.CatalogRecord] = {}
        self.inserts: typing.List[feedsync_messages.CatalogRecord] = []
        self.updates: typing.List[typing.Tuple[int, typing.Dict]] = []
        self.failing_upcs: typing.Set[str] = set()
        for record in records:
            self._store(record)

    def _store(self, record: feedsync_messages.CatalogRecord) -> None:
        record = dataclasses.replace(record, id=record.id or next(self._ids))
        self.records[record.upc] = record

    def find_by_key(self, upc):
        if upc in self.failing_upcs:
            raise RuntimeError('lookup failed for {}'.format(upc))
        record = self.records.get(upc)
        return dataclasses.replace(record) if record else None

    def insert(self, record):
        self.inserts.append(record)
        self._store(record)

    def update(self, record_id, fields):
        self.updates.append((record_id, dict(fields)))
        for upc, record in self.records.items():
            if record.id == record_id:
                self.records[upc] = dataclasses.replace(record, **fields)


class FakeInventoryStore(object):
    def __init__(self, records: typing.Iterable[feedsync_messages.InventoryRecord] = ()):
        self._ids = itertools.count(1)
        self.records: typing.List[feedsync_messages.InventoryRecord] = []
        self.bulk_insert_calls: typing.List[typing.List[feedsync_messages.InventoryRecord]] = []
        self.bulk_update_calls: typing.List[typing.List[feedsync_messages.InventoryQuantityUpdate]] = []
        self.fail_on_write = False
        for record in records:
            self._store(record)

    def _store(self, record):
        self.records.append(dataclasses.replace(record, id=record.id or next(self._ids)))

    def list_by_source(self, source_id):
        return [dataclasses.replace(record) for record in self.records if record.source_id == source_id]

    def bulk_insert(self, records):
        if self.fail_on_write:
            raise RuntimeError('database unavailable')
        self.bulk_insert_calls.append(list(records))
        for record in records:
            self._store(record)

    def bulk_update_quantity(self, updates):
        if self.fail_on_write:
            raise RuntimeError('database unavailable')
        self.bulk_update_calls.append(list(updates))
        by_id = {update.id: update for update in updates}
        self.records = [
            dataclasses.replace(
                record,
                quantity_available=by_id[record.id].quantity_available,
                last_updated=by_id[record.id].last_updated,
            ) if record.id in by_id else record
            for record in self.records
        ]

    def quantity_of(self, source_id, vendor_sku):
        for record in self.records:
            if record.source_id == source_id and record.vendor_sku == vendor_sku:
                return record.quantity_available
        return None


class FakeSnapshotStore(object):
    def __init__(self, snapshots: typing.Optional[typing.Dict[str, str]] = None):
        self.snapshots = dict(snapshots or {})
        self.writes: typing.List[str] = []

    def read(self, key):
        return self.snapshots.get(key)

    def write(self, key, content):
        self.writes.append(key)
        self.snapshots[key] = content


class FakePriorityTable(object):
    def __init__(self, priorities: typing.Optional[typing.Dict[str, typing.Any]] = None):
        self.priorities = {name.lower(): value for name, value in (priorities or {}).items()}
        self.calls: typing.List[str] = []
        self.error: typing.Optional[Exception] = None

    def priority_of(self, source_name):
        self.calls.append(source_name)
        if self.error:
            raise self.error
        return self.priorities.get(source_name.lower())


class FakeRemoteConfigProvider(object):
    def __init__(self, configs: typing.Optional[typing.Dict] = None):
        self.configs = dict(configs or {})

    def get_remote_config(self, source_slug, job_type):
        return self.configs.get((source_slug, job_type))


class FakeJobStateStore(object):
    def __init__(self):
        self.states: typing.Dict[typing.Tuple[str, feedsync_enums.JobType], feedsync_messages.JobRunState] = {}
        self.history: typing.List[feedsync_messages.JobRunState] = []

    def load(self, source_slug, job_type):
        state = self.states.get((source_slug, job_type))
        return dataclasses.replace(state) if state else feedsync_messages.JobRunState(job_type=job_type)

    def save(self, source_slug, state):
        self.history.append(state)
        self.states[(source_slug, state.job_type)] = state


class FakeSourceDirectory(object):
    def __init__(self, sources: typing.Iterable[feedsync_messages.SourceInfo] = ()):
        self.sources = {source.slug: source for source in sources}

    def get_source(self, source_slug):
        return self.sources.get(source_slug)

    def list_active_slugs(self):
        return list(self.sources)


class FakeFeedClient(object):
    """Serves documents by remote path. Values may be bytes, str or an exception to raise."""

    def __init__(self, responses: typing.Dict[str, typing.Any]):
        self.responses = responses
        self.downloads: typing.List[str] = []

    def download(self, remote_path):
        self.downloads.append(remote_path)
        response = self.responses.get(remote_path)
        if response is None:
            raise feeds_exceptions.FeedFileNotFoundError('File not found: {}'.format(remote_path))
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response()
        if isinstance(response, str):
            response = response.encode('utf-8')
        return response


class FakeClientFactory(object):
    def __init__(self, client: FakeFeedClient):
        self.client = client
        self.calls = 0

    def __call__(self, remote_config, timeout=None, downloads_dir=None):
        self.calls += 1
        return self.client


class BlockingDocument(object):
    """A document body that blocks the download until released."""

    def __init__(self, content: str):
        self.content = content
        self.started = threading.Event()
        self.release = threading.Event()

    def __call__(self):
        self.started.set()
        self.release.wait(timeout=5)
        return self.content


def make_remote_config(remote_path: str) -> feedsync_messages.RemoteConfig:
    return feedsync_messages.RemoteConfig(
        protocol=feedsync_enums.FeedProtocol.SFTP,
        host='feeds.example.com',
        username='vendor',
        password='secret',
        remote_path=remote_path,
    )
