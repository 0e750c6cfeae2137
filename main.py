#!/usr/bin/env python3
"""Entry point for the QRM toolkit."""

from qrm_toolkit.cli import main

if __name__ == "__main__":
    main()
