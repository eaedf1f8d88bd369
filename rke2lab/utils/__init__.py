"""Utility functions and helpers for the rke2lab application."""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence

from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed

logger = logging.getLogger("rke2lab.utils")

REDACT_KEYS = ("token", "password", "secret", "key-data", "certificate-data")
REDACT_FLAGS = ("--token=", "--password=")


def merge_dicts(base: Dict[Any, Any], override: Dict[Any, Any]) -> Dict[Any, Any]:
    """Recursively merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary with values to override

    Returns:
        dict: Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


def redact_sensitive_data(data: Any) -> Any:
    """Recursively redact sensitive data from dictionaries and lists.

    Args:
        data: Input data that might contain sensitive information

    Returns:
        Data with sensitive values redacted
    """
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if any(
                redact_key.lower() in str(k).lower()
                for redact_key in REDACT_KEYS
            ) else redact_sensitive_data(v)
            for k, v in data.items()
        }
    elif isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item) for item in data]
    return data


def redact_command(cmd: Sequence[str]) -> List[str]:
    """Return a copy of an argv list that is safe to log."""
    redacted = []
    for arg in cmd:
        arg = str(arg)
        for flag in REDACT_FLAGS:
            if arg.startswith(flag):
                arg = f"{flag}[REDACTED]"
                break
        redacted.append(arg)
    return redacted


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval polling with a bounded number of attempts.

    ``poll`` calls the predicate until it returns a truthy value or the
    attempt budget is spent. Exhaustion is reported as ``False``, never
    raised; exceptions from the predicate itself propagate.
    """
    max_attempts: int
    interval: float
    description: str = "condition"
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")

    @property
    def budget(self) -> float:
        """Upper bound of time spent sleeping, in seconds."""
        return (self.max_attempts - 1) * self.interval

    def poll(self, predicate: Callable[[], Any]) -> bool:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.interval),
            retry=retry_if_result(lambda ok: not ok),
            retry_error_callback=lambda state: False,
            before_sleep=self._log_attempt,
            sleep=self.sleep,
            reraise=True,
        )
        return bool(retrying(predicate))

    def _log_attempt(self, state) -> None:
        logger.debug(
            f"{self.description}: attempt {state.attempt_number}/{self.max_attempts} "
            f"not satisfied, retrying in {self.interval:.0f}s"
        )


# First-boot initialisation: 60 x 3s (about 3 minutes)
BOOT_WAIT = RetryPolicy(max_attempts=60, interval=3.0, description="cloud-init")

# RKE2 service activation: 60 x 5s (about 5 minutes)
SERVICE_WAIT = RetryPolicy(max_attempts=60, interval=5.0, description="service activation")
