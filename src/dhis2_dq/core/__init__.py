"""Core enums, data models, errors and helpers shared across the package."""
