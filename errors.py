"""
Error types raised by the pipeline.

Stages never catch these -- they go straight up through the graph to
whoever called run(), which decides what to show the user.
"""


class PipelineError(Exception):
    """Base class for everything the pipeline raises on purpose."""


class InvalidTopic(PipelineError):
    pass


class RetrievalFailure(PipelineError):
    pass


class MalformedResponse(PipelineError):
    """A JSON response from the model didn't parse or was missing fields."""


class GenerationFailure(PipelineError):
    pass


class PipelineCancelled(PipelineError):
    pass


class RevisionLimitExceeded(PipelineError):
    """The critic never accepted the draft within the revision ceiling.

    Carries the last draft so the caller can still use it.
    """

    def __init__(self, article, revisions):
        super().__init__(
            f"critic still had feedback after {revisions} revision(s)"
        )
        self.article = article
        self.revisions = revisions
