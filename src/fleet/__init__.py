"""Fleet-wide execution of per-target pipelines and the SDK client."""
