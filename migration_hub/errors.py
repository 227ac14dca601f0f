from __future__ import annotations

from typing import Optional


class HubError(RuntimeError):
  """Base class for every failure raised by the resolution layer."""


class StorageError(HubError):
  """The persistent key/value space could not be read or written."""


class NoActivePlatform(HubError):
  """A backend was requested while no platform identity is active."""


class UnsupportedResourceKind(HubError):
  """The active backend has no endpoint table for the requested kind."""


class MissingParameter(HubError):
  """A path parameter required by a primary endpoint was not supplied."""


class AllCandidatesExhausted(HubError):
  """Every candidate endpoint for a probed lookup failed or was absent."""

  def __init__(self, kind: str, last_error: Optional[BaseException] = None) -> None:
    super().__init__(f'No candidate endpoint answered for {kind}: {last_error}')
    self.kind = kind
    self.last_error = last_error


class PrimaryFetchError(HubError):
  """A non-probed listing call failed; surfaced to the caller."""

  def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.detail = detail


class AuthenticationError(HubError):
  """The backend rejected the supplied credentials."""


class KickoffFailed(HubError):
  """The background conversion job could not be started."""


class PollTickFailed(HubError):
  """A single poll tick failed; logged, never raised to the caller."""


class ConvertNowFailed(HubError):
  """A convert-now batch request failed."""


class MigrationFailed(HubError):
  """A workbook migration was rejected or its model task could not be read."""
