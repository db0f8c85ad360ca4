"""Error taxonomy for the ASCII Deck pipeline."""


class AsciiDeckError(Exception):
    """Base class for every reportable pipeline failure."""


class SourceError(AsciiDeckError):
    """The video source cannot be opened or decoded."""


class PlaybackError(AsciiDeckError):
    """The source refused to start playing."""


class SurfaceBusyError(AsciiDeckError):
    """Another driver already owns the output surface."""


class UnsupportedFormatError(AsciiDeckError):
    """No codec/container combination is available for capture."""


class CaptureError(AsciiDeckError):
    """A stream recording could not be written or finalized."""


class EncoderError(AsciiDeckError):
    """The frame encoder rejected a frame or failed to build the container."""


class EmptyEncoderError(EncoderError):
    """Compile was requested before any frame was added."""


class ExportError(AsciiDeckError):
    """A batch export was aborted."""


class SeekError(ExportError):
    """The source rejected a seek or decoded no frame at the target time."""


class SeekTimeoutError(SeekError):
    """A seek was not confirmed within the configured timeout."""
