"""
Assist Controllers (API Routes)
================================

FastAPI routes for KB answers and document lookup.

Controllers delegate to application services.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from supportdesk.assist.application import (
    AnswerRequest,
    AnswerResponse,
    AnswerService,
    DocumentResponse,
    DocumentService,
)
from supportdesk.assist.domain.query import resolve_route
from supportdesk.core import ServiceUnavailableException
from supportdesk.shared.api.middleware import extract_referer
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/support", tags=["Support Answers"])


# ========== Example payloads for Swagger ==========

ANSWER_REQUEST_EXAMPLE = {
    "app_slug": "resume-coach",
    "message": "How do I reset my password?",
    "page_url": "https://app.example.com/account/settings",
    "conversation_history": [
        {"role": "user", "content": "I can't log in"},
        {"role": "assistant", "content": "Are you seeing an error message?"}
    ]
}

ANSWER_RESPONSE_EXAMPLE = {
    "ok": True,
    "answer": "Open Settings > Account and choose Reset password. A reset link is emailed to you and stays valid for 1 hour.",
    "sources": [
        {
            "id": "support_kb_articles_12",
            "type": "support_kb_articles",
            "title": "Reset your password",
            "summary": "Use the reset link from Settings > Account."
        }
    ],
    "resolved": True,
    "bestDocId": "support_kb_articles_12",
    "confidence": 0.86,
    "gate": {"passed": True, "reason": "passed", "lexicalScore": 0.67, "rankingScore": 0.86},
    "triage": {
        "category": "user_error",
        "action": "answer_now",
        "reason": "kb_hit",
        "confidence": 0.86,
        "route": "/account/settings"
    },
    "queryUsed": {"q1": "How do I reset my password?", "q2": "reset my password?"},
    "appSlug": "resume-coach",
    "route": "/account/settings",
    "llmEnabled": True
}

ANSWER_FALLBACK_EXAMPLE = {
    "ok": True,
    "answer": "I couldn't find specific documentation for your question. Please create a support ticket for further assistance.",
    "sources": [],
    "fallback": True,
    "gate": {"passed": False, "reason": "no_hits"},
    "queryUsed": {"q1": "Where is the billing export?"},
    "appSlug": "resume-coach",
    "llmEnabled": False
}


# ========== Dependencies ==========

def get_answer_service(request: Request) -> AnswerService:
    """Get answer service from app state."""
    service = getattr(request.app.state, "answer_service", None)
    if service is None:
        raise ServiceUnavailableException("Answer service not initialized")
    return service


def get_document_service(request: Request) -> DocumentService:
    """Get document service from app state."""
    service = getattr(request.app.state, "document_service", None)
    if service is None:
        raise ServiceUnavailableException("Document service not initialized")
    return service


# ========== Route Handlers ==========

@router.post(
    "/answer",
    response_model=AnswerResponse,
    response_model_exclude_none=True,
    summary="Answer a question from the KB",
    description="""
    Search the support KB and answer when the best document is relevant enough.

    The endpoint:
    1. Normalizes the question and builds up to three query variants
    2. Searches published documents for the app (and shared `*` documents)
    3. Applies the relevance gate (lexical >= 0.2 or ranking >= 0.4)
    4. Synthesizes a short answer, or returns a fallback suggesting a ticket

    Always returns 200 for a valid request; check `fallback` and `gate`.
    """,
    responses={
        200: {
            "description": "Answer or fallback",
            "content": {
                "application/json": {
                    "examples": {
                        "answered": {"value": ANSWER_RESPONSE_EXAMPLE},
                        "fallback": {"value": ANSWER_FALLBACK_EXAMPLE}
                    }
                }
            }
        },
        400: {"description": "Missing message or invalid app_slug"}
    }
)
async def answer_question(
    request: Request,
    payload: AnswerRequest,
    service: AnswerService = Depends(get_answer_service)
):
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    route = resolve_route(payload.route, payload.page_url, extract_referer(request))

    logger.info(
        "Answering support question",
        extra={
            "correlation_id": correlation_id,
            "app_slug": payload.app_slug,
            "route": route,
            "history_turns": len(payload.conversation_history or []),
        }
    )

    result = await service.answer(
        app_slug=payload.app_slug,
        message=payload.message,
        route=route,
        history=payload.history_turns(),
        debug=payload.debug
    )

    return AnswerResponse.from_result(result, payload.app_slug, route=route, user_id=payload.user_id)


@router.get(
    "/doc",
    response_model=DocumentResponse,
    response_model_exclude_none=True,
    summary="Fetch a KB document",
    description="Fetch one KB article by id (`29`, `support_kb_articles_29` or `support_kb_articles:29`).",
    responses={
        400: {"description": "Missing or malformed id"},
        404: {"description": "Document not found"}
    }
)
async def get_document_by_query(
    id: Optional[str] = Query(None, description="Document id"),
    service: DocumentService = Depends(get_document_service)
):
    return {"ok": True, "doc": await service.get_document(id)}


@router.get(
    "/doc/{doc_id}",
    response_model=DocumentResponse,
    response_model_exclude_none=True,
    summary="Fetch a KB document by path id",
    responses={
        400: {"description": "Malformed id"},
        404: {"description": "Document not found"}
    }
)
async def get_document(
    doc_id: str,
    service: DocumentService = Depends(get_document_service)
):
    return {"ok": True, "doc": await service.get_document(doc_id)}
