"""
Exceptions raised when a protocol invariant is broken.

None of these are expected at runtime. A correct engine never raises them;
a test that sees one has found an implementation bug. Usage mistakes such as
requesting the critical section twice are NOT errors: the engine ignores
them and returns False.
"""


class InvariantViolation(RuntimeError):
    """A safety property of the protocol no longer holds."""


class TokenOwnershipError(InvariantViolation):
    """The token was attached twice or detached while absent."""


class MessageNotInFlightError(InvariantViolation):
    """A message was delivered that the channel no longer holds."""


class MessageNotArrivedError(InvariantViolation):
    """A message was delivered before its transit reached 1.0."""
