"""Depth parsing, unit resolution and normalization.

List of modules:
- normalizer: DepthNormalizer and the depth parsing helpers
- units: UnitTable used to resolve and convert units
"""
