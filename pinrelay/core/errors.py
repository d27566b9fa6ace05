"""Error taxonomy shared by both signaling bindings."""
from __future__ import annotations


class SignalingError(RuntimeError):
    """Base class for failures reported back to a signaling client."""

    reason: str = "error"
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SignalingError):
    """Malformed room code, peer id, signal kind or envelope."""

    reason = "validation"
    status_code = 400


class AuthError(SignalingError):
    """Well-formed identity that does not match a role in the room."""

    reason = "auth"
    status_code = 403


class NotFoundError(SignalingError):
    reason = "not_found"
    status_code = 404


class ConflictError(SignalingError):
    """Joiner slot already taken, or connection already linked to a room."""

    reason = "conflict"
    status_code = 409


class PeerUnavailableError(SignalingError):
    reason = "peer_unavailable"
    status_code = 409


class CapacityError(SignalingError):
    """Room code space exhausted."""

    reason = "capacity"
    status_code = 503


class StorageError(SignalingError):
    """Persistence failure in the store-and-forward binding."""

    reason = "storage"
    status_code = 500
