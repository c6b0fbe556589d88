"""Configuration, logging and seeding helpers."""
