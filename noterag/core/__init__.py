"""Configuration, logging and shared exceptions."""
