"""
Assist Interfaces Layer
=======================

Interface adapters (controllers) for KB answering.

Contains:
- Controllers: FastAPI route handlers
"""

from supportdesk.assist.interfaces.controllers import router as assist_router

__all__ = ["assist_router"]
