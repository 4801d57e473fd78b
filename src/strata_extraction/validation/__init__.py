"""Validation of depth sequences and layer boundaries.

List of modules:
- validation_service: ValidationService and its reports
- depth_recovery: automated repair of invalid depth sequences
"""
