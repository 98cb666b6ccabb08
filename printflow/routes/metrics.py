"""
Prometheus metrics endpoint.

Exposes queue and collaborator metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# Job lifecycle
# ============================================

jobs_created = Counter(
    'printflow_jobs_created_total',
    'Total print jobs created',
    ['vendor_id']
)

jobs_admitted = Counter(
    'printflow_jobs_admitted_total',
    'Total print jobs admitted to a queue after payment',
    ['vendor_id']
)

jobs_completed = Counter(
    'printflow_jobs_completed_total',
    'Total print jobs marked done',
    ['vendor_id']
)

payment_rejections = Counter(
    'printflow_payment_rejections_total',
    'Payment verifications rejected',
    ['reason']
)

# ============================================
# Queue
# ============================================

queue_depth = Gauge(
    'printflow_queue_depth',
    'Admitted jobs currently waiting or printing',
    ['vendor_id']
)

# ============================================
# Realtime + notifications
# ============================================

events_published = Counter(
    'printflow_events_published_total',
    'Realtime events published',
    ['type']
)

realtime_connections = Gauge(
    'printflow_realtime_connections',
    'Currently connected realtime clients'
)

notifications_sent = Counter(
    'printflow_notifications_total',
    'Pickup notifications by result',
    ['result']
)


# ============================================
# Metrics Helper Functions
# ============================================

def track_jobs_created(vendor_id: str, count: int = 1):
    """Record jobs created by an upload."""
    jobs_created.labels(vendor_id=vendor_id).inc(count)


def track_jobs_admitted(vendor_id: str, count: int = 1):
    """Record jobs entering the queue."""
    jobs_admitted.labels(vendor_id=vendor_id).inc(count)


def track_job_completed(vendor_id: str):
    jobs_completed.labels(vendor_id=vendor_id).inc()


def track_payment_rejection(reason: str):
    """Record a rejected payment (duplicate_reference, amount_mismatch, ...)."""
    payment_rejections.labels(reason=reason).inc()


def update_queue_depth(vendor_id: str, depth: int):
    queue_depth.labels(vendor_id=vendor_id).set(depth)


def track_event_published(event_type: str):
    events_published.labels(type=event_type).inc()


def update_realtime_connections(count: int):
    realtime_connections.set(count)


def track_notification(result: str):
    notifications_sent.labels(result=result).inc()


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.
    
    Returns all registered metrics in Prometheus format.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
