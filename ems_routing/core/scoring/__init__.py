"""
Hospital suitability scoring.

This package provides the six component scorers, the data-freshness
multiplier and the acuity-based weight profiles used by the ranking engine.
"""
