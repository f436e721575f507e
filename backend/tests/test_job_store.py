from datetime import timedelta

from redis.exceptions import ConnectionError as RedisConnectionError

from gestionale_import.core.config import Settings
from gestionale_import.services.import_state import ImportJob, ImportOptions, ImportStage
from gestionale_import.services.job_store import (
    CANCEL_PREFIX,
    JOB_PREFIX,
    MemoryJobStore,
    RedisJobStore,
    build_job_store,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttls[key] = ex

    def get(self, key):
        return self.data.get(key)

    def exists(self, key):
        return int(key in self.data)


class BrokenRedis:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise RedisConnectionError("connection refused")

        return fail


def _job(job_id="job-1", **options):
    return ImportJob(id=job_id, options=ImportOptions(**options))


def test_memory_store_returns_copies():
    store = MemoryJobStore()
    job = _job()
    store.save(job)

    job.progress.progress = 50
    fetched = store.get("job-1")
    fetched.result.processed = 10

    assert store.get("job-1").progress.progress == 0
    assert store.get("job-1").result.processed == 0


def test_memory_store_expires_jobs():
    clock = FakeClock()
    store = MemoryJobStore(ttl=timedelta(seconds=60), clock=clock)
    store.save(_job())

    clock.now = 59
    assert store.get("job-1") is not None
    clock.now = 60
    assert store.get("job-1") is None
    assert len(store) == 0


def test_memory_store_evicts_oldest_jobs():
    store = MemoryJobStore(max_entries=2)
    for job_id in ("a", "b", "c"):
        store.save(_job(job_id))

    assert store.get("a") is None
    assert store.get("b") is not None
    assert store.get("c") is not None
    assert len(store) == 2


def test_memory_store_cancel_flag():
    store = MemoryJobStore()

    assert store.request_cancel("missing") is False

    store.save(_job())
    assert store.is_cancel_requested("job-1") is False
    assert store.request_cancel("job-1") is True
    assert store.is_cancel_requested("job-1") is True
    assert store.get("job-1").cancel_requested is True


def test_redis_store_round_trip_with_ttl():
    client = FakeRedis()
    store = RedisJobStore(client, ttl=timedelta(minutes=5))
    job = _job(dryRun=True, batchSize=5000)
    job.progress.stage = ImportStage.PROCESSING
    job.result.warnings.append("Riga 1: tipo_record non rilevato")

    store.save(job)
    fetched = store.get("job-1")

    assert client.ttls[f"{JOB_PREFIX}job-1"] == 300
    assert fetched.progress.stage == ImportStage.PROCESSING
    assert fetched.options.dry_run is True
    assert fetched.options.batch_size == 1000
    assert fetched.result.warnings == ["Riga 1: tipo_record non rilevato"]


def test_redis_store_cancel_flag():
    client = FakeRedis()
    store = RedisJobStore(client)

    assert store.request_cancel("job-1") is False

    store.save(_job())
    assert store.request_cancel("job-1") is True
    assert f"{CANCEL_PREFIX}job-1" in client.data
    assert store.is_cancel_requested("job-1") is True
    assert store.get("job-1").cancel_requested is True


def test_redis_store_ignores_corrupt_payload():
    client = FakeRedis()
    client.data[f"{JOB_PREFIX}job-1"] = "{not json"

    assert RedisJobStore(client).get("job-1") is None


def test_redis_store_swallows_redis_errors():
    store = RedisJobStore(BrokenRedis())

    store.save(_job())
    assert store.get("job-1") is None
    assert store.request_cancel("job-1") is False
    assert store.is_cancel_requested("job-1") is False


def test_build_job_store_defaults_to_memory():
    store = build_job_store(Settings(job_store_max_entries=3))

    assert isinstance(store, MemoryJobStore)
