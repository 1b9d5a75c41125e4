"""
DailyNews Processing Module
===========================

Admission pipeline: text cleaning, per-group dedup and quotas, and the
full/single-source ingestion runs.
"""

from .admission import AdmissionSession, DiscardReason, GroupQuota
from .pipeline import IngestionPipeline, IngestionResult, GroupResult

__all__ = [
    'AdmissionSession',
    'DiscardReason',
    'GroupQuota',
    'IngestionPipeline',
    'IngestionResult',
    'GroupResult',
]
