"""Recovery from failed or low-confidence extractions.

List of modules:
- fallback_manager: fallback strategy selection, structural templates and recovery sessions
"""
