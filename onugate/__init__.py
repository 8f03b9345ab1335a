"""onugate: resilient gateway in front of a SmartOLT-style device-management API.

Fetches ONU/OLT state from the upstream, keeps a layered (memory + durable)
cache that survives upstream rate limits and outages, and reconciles the
upstream "statuses" and "details" feeds into unified device records.
"""

__version__ = "0.1.0"
