"""Configuration check registry and evaluation."""
