"""
Package marker for scheduled jobs, the in-process scheduler and the service entry point.
"""
