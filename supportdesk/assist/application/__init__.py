"""
Assist Application Layer
========================

Application layer for KB answering.

Contains:
- Services: AnswerService, DocumentService
- Retrieval: multi-query merge and re-rank
- Synthesis: completion gateway prompt and post-processing
- DTOs: Data transfer objects for API serialization
"""

from supportdesk.assist.application.dto import (
    AnswerRequest,
    AnswerResponse,
    DocumentResponse,
    GateInfo,
    SourceInfo,
)
from supportdesk.assist.application.retrieval import RetrievalMerger
from supportdesk.assist.application.services import AnswerService, DocumentService
from supportdesk.assist.application.synthesis import AnswerSynthesizer

__all__ = [
    # DTOs
    "AnswerRequest",
    "AnswerResponse",
    "DocumentResponse",
    "GateInfo",
    "SourceInfo",
    # Services
    "AnswerService",
    "AnswerSynthesizer",
    "DocumentService",
    "RetrievalMerger",
]
