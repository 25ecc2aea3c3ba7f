# ctaflow/api/v1/templates.py
"""Template picker endpoints"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ctaflow.api.deps import get_business_id, get_sessions
from ctaflow.schemas.template import TemplateListResponse, TemplateMedia, TemplateSort
from ctaflow.services.sessions import EditorSessions

router = APIRouter()


@router.get("/", response_model=TemplateListResponse)
def search_templates(
    q: Optional[str] = Query(None, description="Search by template name"),
    media: str = Query("all", description="all, text, image, video, document (or pdf)"),
    sort: TemplateSort = Query(TemplateSort.UPDATED_DESC, description="Sort order"),
    page: int = Query(1, ge=1, description="Page number"),
    business_id: Optional[str] = Depends(get_business_id),
    sessions: EditorSessions = Depends(get_sessions)
):
    """
    Search approved templates for the step picker

    Returns 204 when a newer search for the same business superseded this one.
    """
    result = sessions.catalog_for(business_id).search(q or "", TemplateMedia.parse(media), sort, page)
    if result is None:
        return Response(status_code=204)
    return result
