"""
AI PR Comment Fixer Bot
Turns unambiguous PR review comments into pushed fix branches
"""

__version__ = "1.0.0"
