"""
Upstream payload normalization into canonical records.
"""
