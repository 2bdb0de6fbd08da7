from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from typing import Any
from models.conversions import ConversionCreate, ConversionTaskResponse
from api.depends import CLIENT_AUTH, TENANT

# Import the Celery task
from celery_tasks.conversion_tasks import record_conversion_task
import logging

logger = logging.getLogger(__name__)

conversion_router = APIRouter(
    prefix="/tenants/{tenant_id}/experiments/{experiment_id}/conversions",
    tags=["conversions"],
    dependencies=[CLIENT_AUTH]
)

# POST /tenants/{tenant_id}/experiments/{experiment_id}/conversions
@conversion_router.post("", response_model=ConversionTaskResponse, status_code=status.HTTP_200_OK)
def record_conversion_route(
    experiment_id: int,
    conversion: ConversionCreate,
    tenant_id: str = TENANT
):
    """
    Record a conversion for a visitor.
    This goes straight to a celery worker and returns immediately with 200 OK,
    the worker marks the visitor's assignment as converted.
    """

    # Prepare the dictionary payload for the task (must be JSON serializable)
    task_payload: dict[str, Any] = {
        'tenant_id': tenant_id,
        'experiment_id': experiment_id,
        'visitor_id': conversion.visitor_id,
        'value': conversion.value,
    }

    # .delay() is non-blocking
    task = record_conversion_task.delay(task_payload)
    logger.debug(f"record_conversion_task task result:{task}")

    return JSONResponse(content={"status": "success", "task_id": task.id}, status_code=status.HTTP_200_OK)
