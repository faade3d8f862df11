"""quotaguard: rate-limited, deduplicating dispatch for quota-limited APIs."""

__version__ = "0.1.0"
