"""
ccgh-stats: sync local Claude Code token usage to a public stats widget.
"""

__version__ = "0.1.0"
