#!/usr/bin/env python3

"""
Command-line interface wrapper for crates-mirror.

This module serves as the entry point for the CLI command and handles
proper package imports when installed via pip.
"""

import sys

def main():
    """Entry point for the crates-mirror CLI command."""
    from .main import main as main_func
    sys.exit(main_func())

if __name__ == "__main__":
    main()
