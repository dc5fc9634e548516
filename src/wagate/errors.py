"""Error taxonomy shared by the session layer and the HTTP boundary.

Each error carries the stable ``code`` string that the API puts on the wire.
"""

from __future__ import annotations


class WagateError(Exception):
    """Base class for errors with a wire-level code."""

    code = "internal_error"


class NotReady(WagateError):
    """Raised when no open session exists to send through."""

    code = "socket_not_ready"


class InvalidRecipient(WagateError, ValueError):
    """Raised when a recipient cannot be turned into a JID."""

    code = "invalid_recipient"


class TransportSendFailure(WagateError):
    """Raised when the transport rejects an outbound send. Not retried."""

    code = "send_failed"


class RenderFailure(WagateError):
    """Raised when the pairing code cannot be rendered to an image."""

    code = "failed_to_generate_qr"


class WebhookDeliveryFailure(WagateError):
    """Webhook endpoint answered with an error status. Logged, never surfaced."""

    code = "webhook_failed"
