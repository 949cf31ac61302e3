"""Persistence layer.

This module persists the ignore store and parses ad-hoc ignore rules.
Evaluation only ever sees immutable snapshots of either.
"""
