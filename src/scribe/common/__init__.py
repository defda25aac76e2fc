"""Configuration, logging and console helpers shared by the CLI."""
