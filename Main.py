#!/usr/bin/env python3
"""

Usage:
    python Main.py [--url https://example.com/] [--once]

Or
    python -m server_clock [--url https://example.com/] [--once]
"""

from server_clock.__main__ import main

if __name__ == "__main__":
    main()
