"""Error classification.

List of modules:
- error_classifier: ErrorClassifier, classification reports and user-facing error reports
"""
