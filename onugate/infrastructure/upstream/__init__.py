"""Upstream client: transport + retry + cache composed into fetch/mutate."""
