class ShopQueryError(Exception):
    """Base class for domain errors raised by the query pipeline."""


class CompletionUnavailableError(ShopQueryError):
    """The completion service is disabled, unreachable, or answered with garbage.

    Callers recover from this locally (heuristic classification or planning);
    it is never surfaced to the client.
    """


class EmbeddingError(ShopQueryError):
    """The embedding service failed. There is no fallback vector, so this propagates."""


class PlanRejectedError(ShopQueryError):
    """The validator refused a plan; it must not be executed."""


class UnsupportedQueryError(ShopQueryError):
    """A single-domain dispatcher received text outside its grammar."""
