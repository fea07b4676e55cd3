"""
Assist Module
=============

Bounded Context for answering widget questions from the support KB.

Responsibilities:
- Normalize questions and build query variants (fluff-stripped, conversation context)
- Multi-query retrieval with merge and app/route-aware re-ranking
- Relevance gate on the best document
- Short answer synthesis through the completion gateway, with verbatim fallback
- Single-document lookup for related-article links
"""

__version__ = "1.0.0"
