"""Core helpers shared by the pipeline stages."""
