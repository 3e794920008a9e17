"""Operator-facing surfaces: control requests and the CLI."""
