import pytest

from app.worker import tasks


class FakePool:
    def __init__(self) -> None:
        self.jobs: list[tuple] = []
        self.closed = False

    async def enqueue_job(self, name, *args):
        self.jobs.append((name, *args))

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_pool(monkeypatch):
    created = []

    async def create_pool(settings):
        pool = FakePool()
        created.append((settings, pool))
        return pool

    monkeypatch.setattr(tasks, "_pool", None)
    monkeypatch.setattr(tasks, "create_pool", create_pool)
    return created


@pytest.mark.asyncio
async def test_enqueue_reuses_one_pool_without_retries(fake_pool):
    await tasks.enqueue_telegram("42", "first")
    await tasks.enqueue_telegram("42", "second")

    assert len(fake_pool) == 1
    settings, pool = fake_pool[0]
    assert settings.conn_retries == 0
    assert pool.jobs == [("deliver_telegram", "42", "first"), ("deliver_telegram", "42", "second")]

    await tasks.close_pool()
    assert pool.closed
    assert tasks._pool is None


@pytest.mark.asyncio
async def test_enqueue_failure_is_raised_to_caller(monkeypatch):
    async def unreachable(settings):
        raise ConnectionError("redis down")

    monkeypatch.setattr(tasks, "_pool", None)
    monkeypatch.setattr(tasks, "create_pool", unreachable)
    with pytest.raises(ConnectionError):
        await tasks.enqueue_telegram("42", "hi")
    assert tasks._pool is None


def test_worker_settings_keep_connect_retries():
    assert tasks.get_redis_settings().conn_retries == 5
