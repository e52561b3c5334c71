from .exception_logging import (
    describe_exception,
    find_in_cause_chain,
    log_exception_with_details,
)

__all__ = ["describe_exception", "find_in_cause_chain", "log_exception_with_details"]
