import os
import log
from dotenv import load_dotenv

# Load .env file into environment
load_dotenv()


def parse_tokens(raw: str | None) -> dict[str, str | None]:
    """
    Parse VALID_TOKENS into a token -> tenant mapping.
    Entries are comma separated, either `token` (service token, every tenant)
    or `token@tenant_id` (token restricted to a single tenant).
    """
    tokens: dict[str, str | None] = {}
    if not raw:
        return tokens

    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        token, _, tenant_id = entry.partition("@")
        tokens[token] = tenant_id or None
    return tokens


class Config:
    def __init__(self):
        self.valkey_host = os.getenv("VALKEY_HOST", "localhost")
        self.valkey_port = int(os.getenv("VALKEY_PORT", 6379))
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./experimentation.db")
        self.log_level = os.getenv("LOG_LEVEL", default="INFO")
        # empty disables the file handler
        self.log_file = os.getenv("LOG_FILE", "experimentation_engine.log")
        self.valid_tokens = parse_tokens(os.getenv("VALID_TOKENS"))
        self.celery_broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1" )
        self.celery_backend_url = os.getenv("CELERY_BACKEND_URL", "redis://localhost:6379/1" )

        # "heuristic" or "ztest"
        self.significance_method = os.getenv("SIGNIFICANCE_METHOD", "ztest")
        # "random" or "hash"
        self.assignment_strategy = os.getenv("ASSIGNMENT_STRATEGY", "random")
        self.analysis_interval_seconds = int(os.getenv("ANALYSIS_INTERVAL_SECONDS", 3600))

        # Call setup_logging when the application starts
        log.setup_logging(self.log_level, self.log_file)

    def __repr__(self):
        return (
            f"<Settings host={self.valkey_host} port={self.valkey_port} loglevel={self.log_level}, "
            f"broker_url:{self.celery_broker_url}, backend_url:{self.celery_backend_url}, "
            f"significance:{self.significance_method}, assignment:{self.assignment_strategy}>"
        )

config = Config()
