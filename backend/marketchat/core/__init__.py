"""Core configuration, errors and shared infrastructure."""
