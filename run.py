#!/usr/bin/env python3
"""
Launcher script for orm-agent.
Run this script to perform one update attempt and run the managed application.
"""

import sys
import os

# Add the current directory to Python path so we can import ormagent
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# Import and run the main function
from ormagent.main import main

if __name__ == "__main__":
    raise SystemExit(main())
