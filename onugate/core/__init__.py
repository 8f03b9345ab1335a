"""Core Application Layer: orchestrates use cases and application logic.

Connects the domain layer with the infrastructure layer through interfaces.
Contains the reconciliation engine and the device service.
"""
