"""
Configuration management for the Share API.

Contains the Pydantic settings model and the cached accessor used by the
app factory and the CLI.
"""
