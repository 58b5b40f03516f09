"""
Incremental extraction engine: source allow-list, watermark store, extractors and summary values.
"""
