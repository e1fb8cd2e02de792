"""
Live fantasy-football auction: timed bidding for Serie A player pools.
"""

__version__ = '1.0.0'
