from abc import ABC, abstractmethod
from datetime import date
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from data.database import Experiment, Variant, Assignment, Result
import logging

logger = logging.getLogger(__name__)

# Define the maximum number of times to retry the insert-if-absent transaction
MAX_RETRIES = 3

DateRange = tuple[date, date]


class ExperimentStore(ABC):
    """
    Durable storage for experiments, variants, assignments and daily rollups.
    Every read and write is scoped by tenant id, an experiment owned by another
    tenant behaves exactly like a missing one.
    """

    @abstractmethod
    def create_experiment(self, tenant_id: str, fields: dict, variants: list[dict]) -> Experiment: ...

    @abstractmethod
    def list_experiments(self, tenant_id: str) -> list[Experiment]: ...

    @abstractmethod
    def list_running_experiments(self) -> list[Experiment]: ...

    @abstractmethod
    def get_experiment(self, tenant_id: str, experiment_id: int) -> Experiment | None: ...

    @abstractmethod
    def update_experiment(self, tenant_id: str, experiment_id: int, **fields) -> Experiment | None: ...

    @abstractmethod
    def list_variants(self, tenant_id: str, experiment_id: int) -> list[Variant]: ...

    @abstractmethod
    def get_assignment(self, tenant_id: str, experiment_id: int, visitor_id: str) -> Assignment | None: ...

    @abstractmethod
    def insert_assignment_if_absent(self, tenant_id: str, experiment_id: int, visitor_id: str, variant_id: int) -> Assignment | None: ...

    @abstractmethod
    def update_assignment_conversion(self, tenant_id: str, experiment_id: int, visitor_id: str, value: float | None = None) -> Assignment | None: ...

    @abstractmethod
    def count_conversions(self, tenant_id: str, experiment_id: int) -> dict[int, int]: ...

    @abstractmethod
    def list_assignments(self, tenant_id: str, experiment_id: int) -> list[Assignment]: ...

    @abstractmethod
    def list_visitor_assignments(self, tenant_id: str, visitor_id: str) -> list[Assignment]: ...

    @abstractmethod
    def upsert_result(self, tenant_id: str, experiment_id: int, variant_id: int, rollup: dict) -> Result | None: ...

    @abstractmethod
    def list_results(self, tenant_id: str, experiment_id: int, date_range: DateRange | None = None) -> list[Result]: ...

    @abstractmethod
    def rollback(self): ...


class SqlExperimentStore(ExperimentStore):
    """SQLAlchemy implementation, the unique constraints on the tables do the concurrency work."""

    def __init__(self, db: Session):
        self.db = db

    def rollback(self):
        self.db.rollback()

    # --- Experiments ---

    def create_experiment(self, tenant_id: str, fields: dict, variants: list[dict]) -> Experiment:
        db_experiment = Experiment(tenant_id=tenant_id, **fields)
        self.db.add(db_experiment)
        self.db.flush() # Flush to get the experiment ID before committing

        for v in variants:
            self.db.add(Variant(experiment_id=db_experiment.id, **v))

        self.db.commit()
        self.db.refresh(db_experiment)
        return db_experiment

    def list_experiments(self, tenant_id: str) -> list[Experiment]:
        return self.db.query(Experiment).filter(
            Experiment.tenant_id == tenant_id
        ).order_by(Experiment.created_at.desc(), Experiment.id.desc()).all()

    def list_running_experiments(self) -> list[Experiment]:
        # Used by the periodic analysis task only, results are re-scoped by tenant afterwards
        return self.db.query(Experiment).filter(Experiment.status == "running").all()

    def get_experiment(self, tenant_id: str, experiment_id: int) -> Experiment | None:
        return self.db.query(Experiment).filter(
            Experiment.id == experiment_id,
            Experiment.tenant_id == tenant_id
        ).one_or_none()

    def update_experiment(self, tenant_id: str, experiment_id: int, **fields) -> Experiment | None:
        experiment = self.get_experiment(tenant_id, experiment_id)
        if not experiment:
            return None

        for key, value in fields.items():
            setattr(experiment, key, value)
        self.db.commit()
        self.db.refresh(experiment)
        return experiment

    # --- Variants ---

    def list_variants(self, tenant_id: str, experiment_id: int) -> list[Variant]:
        """Stable order: control first, then creation order."""
        return self.db.query(Variant).join(
            Experiment, Variant.experiment_id == Experiment.id
        ).filter(
            Variant.experiment_id == experiment_id,
            Experiment.tenant_id == tenant_id
        ).order_by(Variant.is_control.desc(), Variant.id.asc()).all()

    # --- Assignments ---

    def _assignment_query(self, tenant_id: str, experiment_id: int, visitor_id: str):
        return self.db.query(Assignment).join(
            Experiment, Assignment.experiment_id == Experiment.id
        ).filter(
            Assignment.experiment_id == experiment_id,
            Assignment.visitor_id == visitor_id,
            Experiment.tenant_id == tenant_id
        )

    def get_assignment(self, tenant_id: str, experiment_id: int, visitor_id: str) -> Assignment | None:
        return self._assignment_query(tenant_id, experiment_id, visitor_id).first()

    def _owned_variant(self, tenant_id: str, experiment_id: int, variant_id: int) -> Variant | None:
        return self.db.query(Variant).join(
            Experiment, Variant.experiment_id == Experiment.id
        ).filter(
            Variant.id == variant_id,
            Variant.experiment_id == experiment_id,
            Experiment.tenant_id == tenant_id
        ).one_or_none()

    def insert_assignment_if_absent(self, tenant_id: str, experiment_id: int, visitor_id: str, variant_id: int) -> Assignment | None:
        """
        Insert the assignment unless one already exists and return whichever row won.
        Returns None when the variant is not part of an experiment owned by the tenant.
        The (experiment_id, visitor_id) unique constraint decides concurrent inserts,
        a loser rolls back and reads the winner's row on the next pass.
        """
        if not self._owned_variant(tenant_id, experiment_id, variant_id):
            logger.warning("Refused assignment insert: variant %d is not in EID %d for tenant %s",
                           variant_id, experiment_id, tenant_id)
            return None

        for attempt in range(MAX_RETRIES):

            existing = self.get_assignment(tenant_id, experiment_id, visitor_id)
            if existing:
                return existing

            try:
                new_assignment = Assignment(
                    experiment_id=experiment_id,
                    variant_id=variant_id,
                    visitor_id=visitor_id
                )
                self.db.add(new_assignment)
                self.db.commit() # This is where the database constraint check happens
                self.db.refresh(new_assignment)
                return new_assignment

            except IntegrityError:
                # A concurrent transaction beat us to the INSERT
                self.db.rollback()
                logger.warning("RACE DETECTED: IntegrityError on visitor %s (EID %d). Re-reading (Attempt %d/%d)...",
                               visitor_id, experiment_id, attempt + 2, MAX_RETRIES)

        # The unique constraint fired every time yet the row is never readable
        existing = self.get_assignment(tenant_id, experiment_id, visitor_id)
        if existing:
            return existing
        raise RuntimeError(f"Assignment for visitor {visitor_id} (EID {experiment_id}) could not be persisted after {MAX_RETRIES} attempts.")

    def update_assignment_conversion(self, tenant_id: str, experiment_id: int, visitor_id: str, value: float | None = None) -> Assignment | None:
        assignment = self.get_assignment(tenant_id, experiment_id, visitor_id)
        if not assignment:
            return None

        assignment.converted = True
        if value is not None:
            assignment.conversion_value = value
        self.db.commit()
        self.db.refresh(assignment)
        return assignment

    def count_conversions(self, tenant_id: str, experiment_id: int) -> dict[int, int]:
        """Distinct converted assignments per variant id."""
        rows = self.db.query(
            Assignment.variant_id,
            func.count(Assignment.id).label('conversion_count')
        ).join(
            Experiment, Assignment.experiment_id == Experiment.id
        ).filter(
            Assignment.experiment_id == experiment_id,
            Assignment.converted.is_(True),
            Experiment.tenant_id == tenant_id
        ).group_by(Assignment.variant_id).all()
        return {variant_id: count for variant_id, count in rows}

    def list_assignments(self, tenant_id: str, experiment_id: int) -> list[Assignment]:
        return self.db.query(Assignment).join(
            Experiment, Assignment.experiment_id == Experiment.id
        ).filter(
            Assignment.experiment_id == experiment_id,
            Experiment.tenant_id == tenant_id
        ).order_by(Assignment.assigned_at.desc(), Assignment.id.desc()).all()

    def list_visitor_assignments(self, tenant_id: str, visitor_id: str) -> list[Assignment]:
        return self.db.query(Assignment).join(
            Experiment, Assignment.experiment_id == Experiment.id
        ).filter(
            Assignment.visitor_id == visitor_id,
            Experiment.tenant_id == tenant_id
        ).order_by(Assignment.assigned_at.desc()).all()

    # --- Results ---

    def upsert_result(self, tenant_id: str, experiment_id: int, variant_id: int, rollup: dict) -> Result | None:
        """Insert or replace the daily rollup for (experiment, variant, date)."""
        if not self._owned_variant(tenant_id, experiment_id, variant_id):
            return None

        result = self.db.query(Result).filter(
            Result.experiment_id == experiment_id,
            Result.variant_id == variant_id,
            Result.date == rollup["date"]
        ).one_or_none()

        if result:
            for key, value in rollup.items():
                setattr(result, key, value)
        else:
            result = Result(experiment_id=experiment_id, variant_id=variant_id, **rollup)
            self.db.add(result)

        self.db.commit()
        self.db.refresh(result)
        return result

    def list_results(self, tenant_id: str, experiment_id: int, date_range: DateRange | None = None) -> list[Result]:
        query = self.db.query(Result).join(
            Experiment, Result.experiment_id == Experiment.id
        ).filter(
            Result.experiment_id == experiment_id,
            Experiment.tenant_id == tenant_id
        )

        if date_range:
            start, end = date_range
            logger.debug("list results for EID %d between %s and %s", experiment_id, start, end)
            query = query.filter(Result.date >= start, Result.date <= end)

        return query.order_by(Result.date.desc()).all()
