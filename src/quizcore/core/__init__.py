"""Scoring and rate limiting logic. Pure computation plus in-memory counters, no I/O."""
