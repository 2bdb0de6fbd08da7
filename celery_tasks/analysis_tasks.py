from celery_config import celery_app
from celery_tasks.conversion_tasks import get_db_session
from data.store import SqlExperimentStore
from services.advisor import analyze
from services.significance import get_significance_calculator
from typing import Any
import logging

logger = logging.getLogger(__name__)

@celery_app.task(bind=True, ignore_result=False)
def analyze_running_experiments(self) -> list[dict[str, Any]]:
    """
    Periodic analysis of every running experiment.
    Read-only: recommendations are logged and returned, never applied automatically.
    A failing experiment is logged and skipped so the others are still analyzed.
    """
    db = get_db_session()
    if not db:
        raise ConnectionError("Could not establish database session.")

    summaries = []
    try:
        store = SqlExperimentStore(db)
        calculator = get_significance_calculator(store)

        for experiment in store.list_running_experiments():
            try:
                analysis = analyze(store, calculator, experiment.tenant_id, experiment.id)
            except Exception:
                logger.exception("Analysis failed for EID %d (tenant %s)", experiment.id, experiment.tenant_id)
                continue

            summaries.append({
                'tenant_id': experiment.tenant_id,
                'experiment_id': experiment.id,
                'recommended_action': analysis.recommended_action.value,
                'winner': analysis.winner,
                'confidence': analysis.confidence,
            })

        logger.info(f"Task {self.name}[{self.request.id}]. Analyzed {len(summaries)} running experiments.")
        return summaries
    finally:
        db.close()
