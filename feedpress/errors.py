# feedpress/errors.py
"""
Pipeline error taxonomy.

Stage-local failures (one image, one article in a batch) are caught by the
batch loop and reported; everything else propagates to the router, which
maps it to an HTTP status.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    pass


class RecordNotFound(PipelineError):
    """Raised when a referenced row does not exist."""

    def __init__(self, entity: str, record_id):
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity} {record_id} not found")


class InvalidStateTransition(PipelineError):
    """Raised when an operation is not allowed from the record's current status."""

    def __init__(self, entity: str, current: str, target: str, reason: str | None = None):
        self.entity = entity
        self.current = current
        self.target = target
        message = f"{entity} cannot move from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DuplicateIngestion(PipelineError):
    """Storage-level uniqueness violation on a feed item."""

    def __init__(self, source_id, guid: str | None, url: str | None):
        self.source_id = source_id
        self.guid = guid
        self.url = url
        super().__init__(f"Duplicate feed item for source {source_id} (guid={guid}, url={url})")


class GenerationFailure(PipelineError):
    """Generation service error or unusable generation output."""

    pass


class TruncatedUnrepairable(GenerationFailure):
    """Generation output could not be repaired into a JSON object."""

    def __init__(self, message: str, raw_text: str):
        self.raw_text = raw_text
        super().__init__(message)


class ImageUploadFailure(PipelineError):
    """Featured image could not be produced, downloaded or uploaded."""

    pass


class PublishFailure(PipelineError):
    """CMS rejected the request or was unreachable."""

    retryable: bool = False

    def __init__(self, message: str, status_code: int | None = None, retryable: bool | None = None):
        self.status_code = status_code
        if retryable is not None:
            self.retryable = retryable
        super().__init__(message)


class CMSAuthenticationError(PublishFailure):
    """CMS answered 401/403: credentials are wrong or lack permission."""

    pass


class CMSResponseError(PublishFailure):
    """CMS answered with a non-2xx status other than an auth failure."""

    pass


class CMSMisconfiguredError(PublishFailure):
    """CMS answered 2xx with HTML instead of JSON (wrong endpoint or REST API disabled)."""

    pass


class CMSConnectionError(PublishFailure):
    """CMS could not be reached (DNS, TLS, timeout)."""

    retryable = True
