"""
Page cache domain: keys, entries, capture state, repository contract and
invalidation fan-out.
"""
