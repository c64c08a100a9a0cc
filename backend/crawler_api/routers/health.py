"""Health endpoints."""
from fastapi import APIRouter, Depends

from ..dependencies import get_run_queue
from ..schemas import HealthStatus, QueueHealthStatus
from ..services.queue import RunQueueService

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthStatus)
def get_health(queue: RunQueueService = Depends(get_run_queue)) -> HealthStatus:
    """Return service heartbeat information."""

    queue_status = QueueHealthStatus(status="ok")
    if not queue.ping():
        queue_status = QueueHealthStatus(status="error", detail="queue_unreachable")
    return HealthStatus(queue=queue_status)
