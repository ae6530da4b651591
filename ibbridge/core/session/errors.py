from __future__ import annotations


class SessionError(RuntimeError):
    """Base class for failures raised by the trading session."""


class NotConnectedError(SessionError):
    """Raised when an operation needs a session but none is connected."""


class ResolutionError(SessionError):
    """Raised when a ticker cannot be resolved to a contract."""


class SubscriptionReadError(SessionError):
    """Raised when a quote or order status stream fails while being read."""


class OrderSubmissionError(SessionError):
    """Raised when the broker refuses to accept an order."""
