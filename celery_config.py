from celery import Celery
from config import config

# NOTE: You must have a Celery broker running (e.g., Redis or RabbitMQ)
BROKER_URL = config.celery_broker_url
BACKEND_URL = config.celery_backend_url

celery_app = Celery(
    "experiment_tasks",
    broker=BROKER_URL,
    backend=BACKEND_URL,
    # This ensures the tasks are loaded when the worker starts
    include=["celery_tasks.conversion_tasks", "celery_tasks.analysis_tasks"]
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # === Producer-Side (Sending Message) Retry Settings ===
    # Enables retries for publishing tasks when the client cannot connect to the broker.
    task_publish_retry=True,

    task_publish_retry_policy={
        'max_retries': 10,       # Maximum number of retries before giving up
        'interval_start': 0.5,   # Initial wait time in seconds
        'interval_step': 0.5,    # Amount to increase wait time by
        'interval_max': 5,       # Maximum wait time
    },
)

celery_app.conf.task_routes = {
    # conversions are on the serving path, keep them off the analysis queue
    'celery_tasks.conversion_tasks.*': {'queue': 'default'},
    'celery_tasks.analysis_tasks.*': {'queue': 'analysis'},
}

# Periodic analysis of every running experiment (run with `celery beat`)
celery_app.conf.beat_schedule = {
    'analyze-running-experiments': {
        'task': 'celery_tasks.analysis_tasks.analyze_running_experiments',
        'schedule': float(config.analysis_interval_seconds),
    },
}
