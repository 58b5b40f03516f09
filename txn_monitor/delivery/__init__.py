"""
Package marker for the webhook delivery adapter under `txn_monitor.delivery`.
"""
