from __future__ import annotations


class TrackerError(RuntimeError):
  status_code = 400

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class NotFoundError(TrackerError):
  status_code = 404


class ValidationError(TrackerError):
  status_code = 400


class BlankNameError(ValidationError):
  pass


class DuplicateNameError(ValidationError):
  pass


class SelfReferenceError(ValidationError):
  pass


class CrossBucketPositionError(ValidationError):
  pass


class AuthenticationError(TrackerError):
  status_code = 401


class PermissionDeniedError(TrackerError):
  status_code = 403


class ConflictRetryableError(TrackerError):
  """The store aborted the transaction because of a concurrent mutation; safe to retry."""

  status_code = 409


class InternalConsistencyError(TrackerError):
  """A task chain broke one of its invariants. Indicates a bug, never bad input."""

  status_code = 500
