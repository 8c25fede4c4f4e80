"""Error taxonomy for the reducer.

Format errors and invariant violations are fatal for the operation that
raised them. Recoverable data-shape problems are never raised; the
pipeline logs them and skips the affected step.
"""


class VrmReduceError(Exception):
    """Base class for all errors raised by vrmreduce."""


class FormatError(VrmReduceError, ValueError):
    """Malformed or unsupported binary container."""


class InvariantViolation(VrmReduceError):
    """A caller or internal-logic bug: a precondition did not hold."""


def check(condition: bool, message: str) -> None:
    """Raise InvariantViolation with message unless condition holds."""
    if not condition:
        raise InvariantViolation(message)
