"""Shared helpers: errors, API wrappers, auth, dates, geometry and serialization."""
