"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (the upstream HTTP API, the
local disk, configuration sources, logging) by implementing the interfaces
defined in the domain layer.
"""
