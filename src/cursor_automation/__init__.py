"""
Cursor Automation - drives Cursor IDE instances through OS window and input automation.
"""

__version__ = "0.3.0"
