"""API Resilience Implementations.

Contains services for handling upstream rate limits: rate-limit detection,
retries with exponential backoff and optional outbound request pacing.
Bounded Context: API Resilience
"""
