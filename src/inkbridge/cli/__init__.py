"""Command-line interface for InkBridge."""
