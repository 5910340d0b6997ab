"""
Analysis Module

Page-side analysis: feature extraction, DOM structure, similarity
scoring and page diagnostics.
"""

from .diagnostics import PageDiagnostics
from .dom_intelligence import DOMAnalysisResult, DOMIntelligence
from .feature_extractor import FeatureExtractor, PlaywrightFeatureExtractor, generate_selector
from .similarity import SimilarityEngine, SimilarityScore, SimilarityWeights

__all__ = [
    "PageDiagnostics",
    "DOMAnalysisResult",
    "DOMIntelligence",
    "FeatureExtractor",
    "PlaywrightFeatureExtractor",
    "generate_selector",
    "SimilarityEngine",
    "SimilarityScore",
    "SimilarityWeights",
]
