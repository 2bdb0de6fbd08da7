from celery_config import celery_app
from data.database import SessionLocal
from data.store import SqlExperimentStore
from services.conversions import record_conversion
from typing import Any
from sqlalchemy.exc import OperationalError
import logging

logger = logging.getLogger(__name__)

def get_db_session():
    """Provides a fresh database session for asynchronous task execution."""
    try:
        return SessionLocal()
    except Exception as e:
        logger.error(f"Failed to create database session in Celery task: {e}")
        return None

# ignore result as we don't need it and it reduces storage bloat
@celery_app.task(bind=True, max_retries=3, default_retry_delay=30, ignore_result=True)
def record_conversion_task(self, conversion_data: dict[str, Any]):
    """
    Asynchronously marks a visitor's assignment as converted.
    This function must handle its own database session.
    Returns whether the conversion could be attributed to an assignment.
    """
    db = None
    try:
        db = get_db_session()
        if not db:
            # Raise an exception to trigger Celery retry
            raise ConnectionError("Could not establish database session.")

        attributed = record_conversion(
            SqlExperimentStore(db),
            tenant_id=conversion_data['tenant_id'],
            experiment_id=conversion_data['experiment_id'],
            visitor_id=conversion_data['visitor_id'],
            value=conversion_data.get('value'),
        )

        logger.info(f"Task {self.name}[{self.request.id}]. Conversion for visitor {conversion_data['visitor_id']} attributed: {attributed}.")
        return attributed
    except (ConnectionError, OperationalError) as exc:
        logger.error("Database connection failed in Celery task. Retrying...")
        raise self.retry(exc=exc)
    except Exception as exc:
        logger.error(f"Failed to record conversion: {exc}. Payload: {conversion_data}")
        raise  # re-raise so Celery marks FAILURE and we can debug it

    finally:
        if db:
            db.close()
