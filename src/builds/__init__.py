"""Build strategy selection and execution."""
