"""
Command-line Layer.

This package contains the Typer application, interactive prompts and Rich
output helpers.
"""
