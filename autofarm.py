#!/usr/bin/env python3
"""
AutoFarm - a simulated greenhouse monitoring backend
"""

import sys

from pyautofarm.app import main

if __name__ == "__main__":
    sys.exit(main())
