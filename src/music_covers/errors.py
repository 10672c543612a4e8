from __future__ import annotations


class CoverError(RuntimeError):
    """Base class for failures that abort a single cover job."""


class DependencyError(CoverError):
    """The resolver executable could not be located. Fatal for the run."""


class DownloadError(CoverError):
    pass


class ImageProcessingError(CoverError):
    pass


class TagWriteError(CoverError):
    pass
