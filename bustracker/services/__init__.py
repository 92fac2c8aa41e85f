"""
Services module.
Exports the storage, translation, ingestion and prediction services.
"""

from .database_service import DatabaseService
from .line_translator import LineCodeTranslator
from .ingestion_service import IngestionService, CycleReport
from .prediction_service import PredictionService, classify_trajectory, estimate_arrival

__all__ = [
    "DatabaseService",
    "LineCodeTranslator",
    "IngestionService",
    "CycleReport",
    "PredictionService",
    "classify_trajectory",
    "estimate_arrival"
]
