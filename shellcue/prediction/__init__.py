# shellcue/prediction/__init__.py
"""
Prediction engines: argument suggestions and directory jumps.
"""
from shellcue.prediction.models import Suggestion, SuggestionSource, DirectorySuggestion
from shellcue.prediction.predictor import GenericPredictor, PredictorStatistics
from shellcue.prediction.directories import DirectoryMatchEngine, calculate_match_score

__all__ = [
    "Suggestion", "SuggestionSource", "DirectorySuggestion",
    "GenericPredictor", "PredictorStatistics",
    "DirectoryMatchEngine", "calculate_match_score",
]
