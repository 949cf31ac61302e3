"""Boundary to nix, ssh and the target hosts.

Everything that spawns a process lives here so the check, build and
deployment logic can be exercised with in-memory fakes.
"""
