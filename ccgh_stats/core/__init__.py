"""
Core modules for ccgh-stats.

This package contains session log discovery, usage extraction,
sync orchestration and the operational sync log.
"""
