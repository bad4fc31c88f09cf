"""Error taxonomy for the trading loop.

Insufficient price history is deliberately absent: it is a state (the
neutral indicator snapshot), not a failure.
"""


class BotError(Exception):
    """Base class for every error raised by binbot."""


class ConnectionFailure(BotError):
    """Broker unreachable or authorization rejected."""


class OrderRejected(BotError):
    """Broker refused a single order. Local to one decision cycle."""


class ConfigurationInvalid(BotError):
    """A settings update failed validation."""


class InvariantViolation(BotError):
    """A programming error, e.g. settling a trade twice. Never caught by the loops."""


class SessionError(BotError):
    """Session started twice, or ended when none is open."""
