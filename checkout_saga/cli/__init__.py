"""
Command line interface for checkout-saga.
"""

from checkout_saga.cli.app import cli

__all__ = ["cli"]
