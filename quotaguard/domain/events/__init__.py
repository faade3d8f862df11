"""Domain Event definitions.

Represents significant occurrences during dispatch (retries, deferrals,
cache hits) that listeners such as metrics collectors may react to.
"""
