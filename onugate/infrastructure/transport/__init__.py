"""HTTP transport to the upstream device-management API."""
