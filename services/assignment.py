from typing import Callable
from fastapi import HTTPException
from data.database import Variant
from data.store import ExperimentStore
from services.cache import CacheClient
from services.exceptions import AssignmentUnavailable, ExperimentNotFound
from config import config
import hashlib
import random
import logging

logger = logging.getLogger(__name__)

# (experiment_id, visitor_id) -> bucket value in [0, 100)
BucketSource = Callable[[int, str], float]

HASH_BUCKET_SPACE = 16 ** 15


def random_bucket(experiment_id: int, visitor_id: str) -> float:
    """Uniform draw, every new visitor gets a fresh value."""
    return random.random() * 100


def hash_bucket(experiment_id: int, visitor_id: str) -> float:
    """Replayable draw: the same experiment/visitor pair always maps to the same value."""
    digest = hashlib.sha256(f"{experiment_id}:{visitor_id}".encode("utf-8")).hexdigest()
    return int(digest[:15], 16) / HASH_BUCKET_SPACE * 100


BUCKET_SOURCES: dict[str, BucketSource] = {
    "random": random_bucket,
    "hash": hash_bucket,
}


def get_bucket_source(name: str | None = None) -> BucketSource:
    name = name or config.assignment_strategy
    if name not in BUCKET_SOURCES:
        raise ValueError(f"Unknown assignment strategy '{name}', expected one of {sorted(BUCKET_SOURCES)}")
    return BUCKET_SOURCES[name]


def choose_variant(variants: list[Variant], bucket: float) -> Variant:
    """
    Walk the variants in their stable order accumulating traffic_percentage and
    return the first one whose cumulative weight reaches the bucket value.
    When rounding leaves the total just under 100 the last variant takes the remainder.
    """
    cumulative = 0.0
    for variant in variants:
        cumulative += variant.traffic_percentage
        # zero-weight variants never receive traffic, even for a bucket of exactly 0
        if variant.traffic_percentage > 0 and cumulative >= bucket:
            return variant

    return variants[-1]


def get_variants(store: ExperimentStore, cache: CacheClient, tenant_id: str, experiment_id: int) -> list[Variant]:
    """ Get the experiment variants, control first """

    variants = cache.get_variants(tenant_id, experiment_id)
    if variants is None:
        variants = store.list_variants(tenant_id, experiment_id)
        if variants:
            cache.set_variants(tenant_id, experiment_id, variants)
        logger.debug("get_variants %d cache miss", experiment_id)
    else:
        logger.debug("get_variants %d cache hit", experiment_id)

    return variants


# --- Idempotent Assignment ---
def assign(
    store: ExperimentStore,
    cache: CacheClient,
    tenant_id: str,
    experiment_id: int,
    visitor_id: str,
    bucket_source: BucketSource | None = None
) -> Variant:
    """
    Returns the visitor's variant, creating the assignment on first exposure.
    Concurrent first exposures converge on a single row through the store's
    insert-if-absent, the losing request returns the winner's variant.
    """
    variants = get_variants(store, cache, tenant_id, experiment_id)
    if not variants:
        logger.info("Experiment ID %d not found or has no variants.", experiment_id)
        raise ExperimentNotFound(experiment_id, detail=f"Experiment ID {experiment_id} not found or has no variants.")

    variants_by_id = {v.id: v for v in variants}

    cached_variant_id = cache.get_assigned_variant_id(tenant_id, experiment_id, visitor_id)
    if cached_variant_id in variants_by_id:
        logger.debug("assignment for visitor %s (EID %d) cache hit", visitor_id, experiment_id)
        return variants_by_id[cached_variant_id]

    try:
        existing = store.get_assignment(tenant_id, experiment_id, visitor_id)
        if existing:
            logger.info("Found persistent assignment for visitor %s on EID %d: variant %d",
                        visitor_id, experiment_id, existing.variant_id)
            assignment = existing
        else:
            bucket = (bucket_source or get_bucket_source())(experiment_id, visitor_id)
            chosen = choose_variant(variants, bucket)
            assignment = store.insert_assignment_if_absent(tenant_id, experiment_id, visitor_id, chosen.id)
            if assignment is None:
                # cached variants outlived the experiment or its tenant ownership
                raise ExperimentNotFound(experiment_id, detail=f"Experiment ID {experiment_id} not found or has no variants.")

            if assignment.variant_id != chosen.id:
                logger.info("Visitor %s (EID %d) was assigned concurrently, keeping variant %d",
                            visitor_id, experiment_id, assignment.variant_id)
            else:
                logger.info("SUCCESS: Visitor %s newly assigned to %s (EID %d), bucket %.4f.",
                            visitor_id, chosen.name, experiment_id, bucket)

    except HTTPException:
        raise

    except Exception:
        store.rollback()
        logger.exception("An unexpected error occurred during assignment for visitor %s.", visitor_id)
        raise AssignmentUnavailable(experiment_id)

    cache.set_assigned_variant_id(tenant_id, experiment_id, visitor_id, assignment.variant_id)

    variant = variants_by_id.get(assignment.variant_id)
    if variant is None:
        # cached variant list is older than the assignment row
        variant = next(v for v in store.list_variants(tenant_id, experiment_id) if v.id == assignment.variant_id)
    return variant
