"""
Fener Stats data-access layer: cached, coalesced access to API-Football.
"""
