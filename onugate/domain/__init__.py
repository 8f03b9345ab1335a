"""Domain Layer: value objects, interfaces (ports), errors and events.

Nothing in this package performs I/O; infrastructure adapters implement the
interfaces defined here.
"""
