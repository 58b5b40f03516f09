"""
Package marker for shared settings, database and logging helpers under `txn_monitor.common`.
"""
