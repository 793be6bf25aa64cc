"""
Failure conditions of the motion-trace pipeline.

Whole-run failures (clip not ready, seek timeout, estimator unavailable)
abort an extraction before or during sampling. A frame without a detected
pose is NOT an error: it is reported as ``None`` landmarks and the run goes on.
"""


class PipelineError(Exception):
    """Base class for whole-run pipeline failures."""


class InvalidTrimWindow(PipelineError, ValueError):
    """Trim bounds violate 0 <= start < end <= duration."""


class ClipNotReady(PipelineError):
    """The video cannot be seeked or decoded yet."""


class SeekTimeout(PipelineError):
    """A seek did not complete within the configured bound."""


class EstimatorUnavailable(PipelineError):
    """The pose model could not be loaded or initialised."""


class EstimatorBusy(PipelineError):
    """A second estimation was requested while one is still pending."""


class EstimateTimeout(PipelineError):
    """Pose estimation for a single frame did not return in time."""


class RunCancelled(Exception):
    """Raised at a resume point when the extraction run has been superseded."""

    def __init__(self, run_id: int):
        super().__init__(f"Extraction run {run_id} was superseded")
        self.run_id = run_id
