import json
import logging
import time
import redis
from data.database import Variant
from config import config

logger = logging.getLogger(__name__)

VARIANTS_CACHE_TTL = 60     # variant lists, seconds
ASSIGNMENT_CACHE_TTL = 3600 # an assignment never changes variant


def variants_key(tenant_id: str, experiment_id: int) -> str:
    return f"var:{tenant_id}:{experiment_id}"


def assignment_key(tenant_id: str, experiment_id: int, visitor_id: str) -> str:
    return f"asn:{tenant_id}:{experiment_id}:{visitor_id}"


# --- Backends ---

class _MockValkeyBackend:
    """In-process stand-in for Valkey, honors expiry so TTL behaviour can be tested."""
    def __init__(self, clock=time.monotonic):
        self._entries: dict[str, tuple[str, float]] = {}
        self._clock = clock

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: str, ex: int):
        self._entries[key] = (value, self._clock() + ex)


class RealValkeyBackend:
    """
    redis-py client against Valkey. Errors after connecting are logged and
    reported as misses, callers fall through to the store.
    """
    def __init__(self, host: str, port: int, db: int = 0, password: str | None = None):
        self.client = redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            decode_responses=True,
            socket_timeout=2.0
        )
        try:
            self.client.ping()
        except redis.RedisError as e:
            logger.error("Failed to connect to Valkey at %s:%d: %s", host, port, e)
            raise

    def get(self, key: str) -> str | None:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            logger.error("Valkey GET error for key %s: %s", key, e)
            return None

    def set(self, key: str, value: str, ex: int):
        try:
            self.client.set(key, value, ex=ex)
        except redis.RedisError as e:
            logger.error("Valkey SET error for key %s: %s", key, e)


# --- Client ---

class CacheClient:
    """Serving-path cache for variant lists and sticky assignments. Keys always carry the tenant id."""

    def __init__(self, backend):
        self.backend = backend
        logger.debug("CacheClient backend: %s", type(backend).__name__)

    def get_variants(self, tenant_id: str, experiment_id: int) -> list[Variant] | None:
        json_str = self.backend.get(variants_key(tenant_id, experiment_id))
        if not json_str:
            return None
        return [Variant.from_dict(item) for item in json.loads(json_str)]

    def set_variants(self, tenant_id: str, experiment_id: int, variants: list[Variant]):
        json_str = json.dumps([v.to_dict() for v in variants])
        self.backend.set(variants_key(tenant_id, experiment_id), json_str, ex=VARIANTS_CACHE_TTL)
        logger.debug("Variants for EID %d cached.", experiment_id)

    def get_assigned_variant_id(self, tenant_id: str, experiment_id: int, visitor_id: str) -> int | None:
        value = self.backend.get(assignment_key(tenant_id, experiment_id, visitor_id))
        return int(value) if value else None

    def set_assigned_variant_id(self, tenant_id: str, experiment_id: int, visitor_id: str, variant_id: int):
        self.backend.set(assignment_key(tenant_id, experiment_id, visitor_id), str(variant_id), ex=ASSIGNMENT_CACHE_TTL)


_DEFAULT_CACHE_CLIENT: CacheClient | None = None

def _create_backend():
    if not config.valkey_host:
        logger.info("VALKEY_HOST not set. Using in-memory cache backend.")
        return _MockValkeyBackend()

    try:
        return RealValkeyBackend(host=config.valkey_host, port=config.valkey_port)
    except redis.RedisError:
        logger.warning("Valkey unreachable, falling back to in-memory cache backend.")
        return _MockValkeyBackend()

def get_cache_client():
    # Connect on first use so importing the module never touches the network
    global _DEFAULT_CACHE_CLIENT
    if _DEFAULT_CACHE_CLIENT is None:
        _DEFAULT_CACHE_CLIENT = CacheClient(backend=_create_backend())
    return _DEFAULT_CACHE_CLIENT

def get_mock_cache_client(clock=time.monotonic):
    return CacheClient(backend=_MockValkeyBackend(clock=clock))
