#!/usr/bin/env python3
"""
Main entry point for the Bookmark Enricher.

This module serves as the console-script entry point.
"""

import sys
from bookmark_enricher.cli import main


if __name__ == "__main__":
    sys.exit(main())
