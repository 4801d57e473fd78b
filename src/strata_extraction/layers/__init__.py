"""Layer segmentation and confidence scoring.

List of modules:
- layer: ExtractedLayer and its confidence and source enums
- layer_detection: run-length segmentation of signal points into layers
- confidence: per-layer confidence and the overall confidence scorer
"""
