from fastapi import HTTPException, status


class ExperimentNotFound(HTTPException):
    """Experiment is absent, has no variants, or belongs to another tenant."""
    def __init__(self, experiment_id: int, detail: str | None = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or f"Experiment ID {experiment_id} not found.",
        )
        self.experiment_id = experiment_id


class VariantNotFound(HTTPException):
    def __init__(self, experiment_id: int, variant_id: int):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Variant ID {variant_id} not found in experiment ID {experiment_id}.",
        )
        self.experiment_id = experiment_id
        self.variant_id = variant_id


class ExperimentValidationError(HTTPException):
    """Caller supplied an invalid experiment definition, never retried."""
    def __init__(self, detail: str):
        super().__init__(status_code=422, detail=detail)


class InvalidStatusTransition(HTTPException):
    def __init__(self, experiment_id: int, current: str, requested: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Experiment ID {experiment_id} cannot move from '{current}' to '{requested}'.",
        )
        self.current = current
        self.requested = requested


class AssignmentUnavailable(HTTPException):
    """The store could not persist or read back an assignment."""
    def __init__(self, experiment_id: int):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Experiment ID {experiment_id} unable to create assignment.",
        )
