from typing import Optional


class SynthesizerError(Exception):
    """
    Base error carrying a short machine-readable code alongside the message.
    """

    code = "SYNTHESIZER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class SynthesisError(SynthesizerError):
    """
    Precondition violation inside the transform pipeline (undecodable source,
    missing label, invalid options). Fatal for the current operation.
    """

    code = "SYNTHESIS_FAILED"


class StoreUnavailableError(SynthesizerError):
    """The variant store could not be read or written."""

    code = "STORE_UNAVAILABLE"


class PurgeError(SynthesizerError):
    """
    Clearing persisted variants failed. Never swallowed: the caller must tell
    the user that storage was not cleared.
    """

    code = "PURGE_FAILED"
