"""Summary submission endpoint."""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ai_summary.models.summaries import SummaryRequest, SummarySubmissionResponse
from ai_summary.services.summaries import SummaryService

router = APIRouter(prefix="/summaries", tags=["summaries"])


def get_summary_service(request: Request) -> SummaryService:
    """Fetch the initialized summary service from app state."""
    service = getattr(request.app.state, "summary_service", None)
    if not isinstance(service, SummaryService):
        raise HTTPException(status_code=500, detail="Summary service is not initialized")
    return service


@router.post(
    "", response_model=SummarySubmissionResponse, status_code=status.HTTP_202_ACCEPTED
)
async def submit_summaries(
    request: SummaryRequest,
    summary_service: SummaryService = Depends(get_summary_service),
) -> SummarySubmissionResponse:
    """
    Queue summaries for a selection of attachments.

    Skipped attachments and attachments that are already being summarized
    are reported rather than queued.
    """
    return await summary_service.submit(request)
