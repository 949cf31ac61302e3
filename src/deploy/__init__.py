"""Per-target deployment state machine and runtime status queries."""
