"""Custom exceptions for editing-transcoder."""

from typing import List, Optional


class EditingTranscoderError(Exception):
    """Base exception class."""

    pass


class ValidationError(EditingTranscoderError):
    """Run rejected before dispatch, one message per offending file."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class EngineUnavailable(EditingTranscoderError):
    """The transcoding engine could not be reached."""

    pass


class InvalidRequest(EditingTranscoderError):
    """Dispatch request rejected because of its parameters."""

    pass


class StateConflict(EditingTranscoderError):
    """Operation not allowed in the current task or run state."""

    pass


class UnknownEvent(EditingTranscoderError):
    """Engine event for a group that is not tracked."""

    pass


class ConfigError(EditingTranscoderError):
    """Configuration error."""

    pass


class MediaProbeError(EditingTranscoderError):
    """Media metadata could not be read."""

    pass
