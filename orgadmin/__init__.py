"""
Backend package for the community organisation admin API.

This package provides a FastAPI application around the team hierarchy,
with storage and database abstractions so the same code runs against
S3/Postgres in production and in-memory doubles in tests.
"""
