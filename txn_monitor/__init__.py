"""
Incremental transaction monitor.
Polls the monitored tables for rows that appeared since the previous run and posts summaries to a Teams webhook.
"""
