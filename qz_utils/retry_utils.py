from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random_exponential

from src.domain.errors import ConcurrentModificationError
from .logger_utils import logger


def on_retry_callback(retry_state):
    """Callback function to log retry attempts."""
    logger.warning(
        f"Retrying function {retry_state.fn.__name__}, "
        f"attempt {retry_state.attempt_number} after {retry_state.seconds_since_start:.2f}s..."
    )


def retry_on_version_clash(max_attempts: int = 5):
    """
    Retry a read-modify-write cycle that lost an optimistic-concurrency race.

    Only ConcurrentModificationError triggers a retry; every other error
    propagates on the first attempt. After the last attempt the clash is
    re-raised as-is.
    """
    return retry(
        retry=retry_if_exception_type(ConcurrentModificationError),
        wait=wait_random_exponential(multiplier=0.02, max=0.5),
        stop=stop_after_attempt(max_attempts),
        before_sleep=on_retry_callback,
        reraise=True,
    )
