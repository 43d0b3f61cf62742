"""Core configuration, logging and storage."""
