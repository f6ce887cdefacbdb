"""Exception taxonomy for the video job pipeline.

Fatal conditions derive from PipelineError. ``retryable`` tells the
compiler's retry policy whether another attempt can change the outcome.
"""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    retryable = False


class NotFound(PipelineError):
    """Job or segment records could not be loaded."""


class EmptyBatch(PipelineError):
    """The job has no segments to generate."""


class InvalidJobState(PipelineError):
    """The job is already in a terminal status."""


class NoCompletedSegments(PipelineError):
    """No segment is completed with a clip URL, so there is nothing to compile."""


class AllSegmentsFailed(PipelineError):
    """Every segment generation in the batch failed."""

    def __init__(self, message: str = "all segment generations failed"):
        super().__init__(message)


class SegmentGenerationError(PipelineError):
    """The generation runtime reported an execution error for one segment."""


class TranscodeFailure(PipelineError):
    """ffmpeg exited non-zero, timed out or produced no output file."""

    retryable = True

    def __init__(self, message: str = "Video compilation failed - FFmpeg error"):
        super().__init__(message)


class CompileTimeout(PipelineError):
    """A compile attempt exceeded its wall-clock ceiling."""

    retryable = True

    def __init__(self, message: str = "Video compilation timed out"):
        super().__init__(message)


class OrchestratorTimeout(PipelineError):
    """A whole video job run exceeded its wall-clock ceiling."""

    def __init__(self, message: str = "video generation timed out"):
        super().__init__(message)
