"""Exception taxonomy for page integrity analysis.

The analyzers raise these internally and resolve them at their entry
points into empty or default results, so callers never see them from
``VisualAnalyzer`` or ``ApprovalAnalyzer``. The extraction loader is the
exception: malformed input is reported to the caller.
"""


class IntegrityError(Exception):
    """Base class for page integrity errors."""


class InputUnavailable(IntegrityError):
    """The page raster could not be found or decoded."""


class AnalysisFailure(IntegrityError):
    """An unexpected fault occurred while analyzing a page."""


class ThumbnailFailure(IntegrityError):
    """A thumbnail crop could not be produced or written."""


class ExtractionFormatError(IntegrityError, ValueError):
    """Extraction JSON does not have the expected shape."""
