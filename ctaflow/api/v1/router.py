# ctaflow/api/v1/router.py
"""Main API router combining all v1 endpoints"""
from fastapi import APIRouter

from ctaflow.api.v1 import editor, templates

api_router = APIRouter()

# Include all routers
api_router.include_router(editor.router, prefix="/editor", tags=["Editor"])
api_router.include_router(templates.router, prefix="/templates", tags=["Templates"])
