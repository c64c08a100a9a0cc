"""Redis-backed run queue integration for the ingest service."""
from __future__ import annotations

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue

from ..schemas import RunLogCreate, RunModel, RunRequest
from ..settings import IngestSettings
from .runner import RunStores, enqueue_run_record
from .tasks import execute_crawl_run


class RunQueueError(RuntimeError):
    """Raised when the queue cannot accept a run."""


class RunQueueService:
    """Encapsulates the Redis queue connection and enqueue workflow."""

    def __init__(self, settings: IngestSettings) -> None:
        self._settings = settings
        self._connection = self._create_connection(settings)
        self._queue = Queue(settings.redis_queue_name, connection=self._connection)

    @staticmethod
    def _create_connection(settings: IngestSettings) -> Redis:
        """Instantiate a Redis connection, supporting fakeredis for tests."""

        url = settings.redis_url
        if url.startswith("fakeredis://"):
            import fakeredis

            # One in-memory server per service so separate apps never share jobs.
            return fakeredis.FakeRedis(server=fakeredis.FakeServer())  # type: ignore[return-value]
        return Redis.from_url(url)

    @property
    def queue(self) -> Queue:
        """Expose the underlying RQ queue for workers and diagnostics."""

        return self._queue

    @property
    def connection(self) -> Redis:
        """Return the Redis connection used by the queue."""

        return self._connection

    def ping(self) -> bool:
        """Check whether the queue backend is reachable."""

        try:
            return bool(self._connection.ping())
        except RedisError:
            return False

    def depth(self) -> int:
        try:
            return len(self._queue)
        except RedisError:
            return 0

    def enqueue(self, stores: RunStores, request: RunRequest) -> RunModel:
        """Persist a queued run and hand it to the worker queue."""

        run = enqueue_run_record(stores, request, self._settings)
        stores.events.append(
            run.id,
            RunLogCreate(
                level="info",
                message=f"{run.type} enqueued",
                context={"source": run.source, "total": run.total},
            ),
        )

        try:
            self._queue.enqueue(
                execute_crawl_run,
                job_id=run.id,
                job_timeout=-1,
                kwargs={
                    "run_id": run.id,
                    "request": request.model_dump(exclude={"inline"}),
                    "settings": self._settings.model_dump(),
                    "worker_name": self._settings.queue_worker_name,
                },
            )
        except RedisError as exc:  # pragma: no cover - failure path
            stores.events.append(
                run.id,
                RunLogCreate(
                    level="error",
                    message="Failed to enqueue run",
                    context={"error": str(exc)},
                ),
            )
            stores.runs.mark_failed(run.id, message="queue_unavailable")
            raise RunQueueError("Unable to enqueue run") from exc

        return run
