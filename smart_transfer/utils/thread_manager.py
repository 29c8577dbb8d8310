# smart_transfer/utils/thread_manager.py

import logging

logger = logging.getLogger(__name__)

# --- Self-Documenting Constants ---

# Remote sessions multiplex every transfer over one connection with a finite
# number of channels, so the default number of simultaneous transfers is small.
DEFAULT_MAX_CONCURRENCY = 3

# Upper bound on worker threads regardless of what the configuration asks for.
MAX_WORKER_THREADS = 32


def resolve_worker_count(requested: int, *transport_limits: int | None) -> int:
    """
    Determines how many transfers may run at the same time.

    The configured limit is narrowed by every transport that declares a
    stream capacity of its own. A transport that can only carry one stream
    collapses the effective concurrency to 1 even if more was requested.

    Args:
        requested: The configured maximum concurrency (already validated > 0).
        transport_limits: The `max_streams` capability of each endpoint
            involved. None means the endpoint imposes no limit.

    Returns:
        The number of executions the queue may run concurrently.
    """
    effective = min(requested, MAX_WORKER_THREADS)
    for limit in transport_limits:
        if limit is not None and limit > 0:
            effective = min(effective, limit)

    if effective < requested:
        logger.info(f"Concurrency limited by transport capability: requested {requested}, using {effective}.")
    return effective
