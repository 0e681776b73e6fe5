"""Command-line interface for the VectorNode matching engine."""
