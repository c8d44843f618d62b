"""
Main entry point when running the carrot_planner module with python -m.
"""

import logging
import sys

from .replay import main

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)
