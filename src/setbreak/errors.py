"""Exception hierarchy for SetBreak.

Every per-track failure in the analysis pipeline is one of DecodeError,
EngineError or StorageError. None of them aborts a batch run.
"""


class SetbreakError(Exception):
    """Base class for all SetBreak errors."""


class DecodeError(SetbreakError):
    """An audio file could not be decoded to PCM."""


class UnsupportedFormatError(DecodeError):
    def __init__(self, extension: str) -> None:
        super().__init__(f"Unsupported format: {extension or '<none>'}")
        self.extension = extension


class NativeDecodeError(DecodeError):
    """The in-process decoder rejected the file."""


class TranscoderNotFoundError(DecodeError):
    def __init__(self, tool: str) -> None:
        super().__init__(f"{tool} not found - required for this format")
        self.tool = tool


class TranscodeError(DecodeError):
    """The transcoding subprocess exited non-zero."""

    def __init__(self, tool: str, returncode: int, stderr: str) -> None:
        super().__init__(f"{tool} exited with status {returncode}: {stderr.strip()}")
        self.tool = tool
        self.returncode = returncode
        self.stderr = stderr


class EngineError(SetbreakError):
    """The analysis engine failed. The message is passed through untouched."""


class StorageError(SetbreakError):
    """A persistence-layer operation failed."""
