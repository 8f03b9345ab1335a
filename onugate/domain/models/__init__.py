"""Domain models: cache entries, device records and result envelopes."""
