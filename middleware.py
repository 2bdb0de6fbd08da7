from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from contextvars import ContextVar

import logging
import uuid

# Define the ContextVar to store the request ID
request_id_context: ContextVar[str] = ContextVar("request_id", default="N/A")

REQUEST_ID_HEADER = "X-Request-ID"

logger = logging.getLogger(__name__)

# --- Middleware Implementation ---

class RequestIDMiddleware(BaseHTTPMiddleware):
    @classmethod
    def request_id_context(cls):
        return request_id_context

    async def dispatch(self, request: Request, call_next):

        # The site-serving layer forwards its own id so assignment logs can be correlated,
        # otherwise generate one (shortened for readability in logs)
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]

        # Store the token (ContextVar token) to be used for reset later
        token = request_id_context.set(request_id)

        logger.debug("%s %s request started", request.method, request.url.path)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id

        except Exception:
            # Log any exceptions with the context intact
            logger.exception("Unhandled error during %s %s.", request.method, request.url.path)
            raise

        finally:
            # Reset the context variable when the request is done
            request_id_context.reset(token)

        return response
