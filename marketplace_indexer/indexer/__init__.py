"""
Chain access, event reconciliation, crawler loop and cron sweep.
"""
