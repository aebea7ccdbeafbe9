"""Position and candidate lifecycle engine for prediction markets.

Maintain a pool of tradeable candidates from a market feed, evaluate
Reversal and Convergence entry/exit rules per snapshot, keep an
authoritative ledger of positions and equity, and drive the whole thing
either as a deterministic historical replay or as a periodic live poll.
"""
