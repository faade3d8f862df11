"""API Resilience Implementations.

Contains the error classifier, the backoff executor, the serial request
queue and a per-client window rate limiter.
Bounded Context: API Resilience
"""
