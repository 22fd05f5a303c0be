"""Exception types raised across the revision and publishing core."""

from __future__ import annotations


class PerdiaError(Exception):
    """Base class for all errors raised by perdia."""


class NotFound(PerdiaError):
    """An article or version does not exist (or does not belong to the article)."""

    def __init__(self, kind: str, ident: object) -> None:
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


class UnknownStrategy(PerdiaError):
    """A revision type outside the strategy catalog was requested."""


class PersistenceFailed(PerdiaError):
    """A store write failed and was rolled back."""

    def __init__(self, message: str, *, article_id: int | None = None) -> None:
        super().__init__(message)
        self.article_id = article_id


class ProviderError(PerdiaError):
    """A single provider call failed or timed out."""

    def __init__(self, provider: str, cause: BaseException) -> None:
        super().__init__(f"{provider}: {cause!r}")
        self.provider = provider
        self.cause = cause


class RevisionError(PerdiaError):
    """A revision attempt failed at a given stage."""

    def __init__(
        self,
        message: str,
        *,
        article_id: int,
        stage: str,
        errors: list[ProviderError] | None = None,
    ) -> None:
        super().__init__(message)
        self.article_id = article_id
        self.stage = stage
        self.errors = errors or []


class GenerationFailed(RevisionError):
    """Every generation provider failed."""


class HumanizationFailed(RevisionError):
    """Every humanization provider failed while humanization was required."""


class EnrichmentFailed(PerdiaError):
    """Link enrichment could not produce content. Always absorbed by callers."""


class PublishFailed(PerdiaError):
    """The publish transport reported a failure."""
