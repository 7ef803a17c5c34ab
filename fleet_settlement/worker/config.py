### fleet_settlement/worker/config.py

"""
Celery configuration settings

Broker and result backend, serialization, timezone and task execution
settings for the settlement worker.
"""

# Local imports
from fleet_settlement.core.config import settings

# Broker and result backend configurations
broker_url = settings.celery_broker
result_backend = settings.celery_backend

# Task serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"
timezone = "UTC"
enable_utc = True

# Task settings
task_track_started = True
task_time_limit = 30 * 60  # 30 minutes
task_soft_time_limit = 25 * 60  # 25 minutes
worker_prefetch_multiplier = 1
task_acks_late = True

# Batches for one vehicle must not run side by side
task_routes = {
    "settlements.execute_settlement_batch": {"queue": "settlements"},
}
worker_concurrency = 1

broker_connection_retry_on_startup = True
broker_connection_retry = True
broker_connection_max_retries = 10

# Run tasks in-process under test
task_always_eager = settings.environment == "test"
