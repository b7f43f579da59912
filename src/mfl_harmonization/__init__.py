"""Harmonization of health facility master lists into provenanced facility records."""

from mfl_harmonization.core.harmonizer import BatchReport, Harmonizer, harmonize
from mfl_harmonization.core.models import FacilityRecord, ProvenancedField, RepeatedProvenancedList

__all__ = [
    "BatchReport",
    "FacilityRecord",
    "Harmonizer",
    "ProvenancedField",
    "RepeatedProvenancedList",
    "harmonize",
]
