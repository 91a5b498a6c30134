#!/usr/bin/env python3

"""
crates.io Repository Mirror

Clones the source repository of every crate published on crates.io and
records per-crate outcomes so interrupted or repeated runs resume where
they left off.
"""

__version__ = "0.1.0"
__author__ = "crates-mirror Project"
