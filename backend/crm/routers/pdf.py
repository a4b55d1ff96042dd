import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response

from crm.exceptions import CRMError
from crm.schemas.pdf import GeneratePdfRequest
from crm.services.pdf_service import pdf_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pdf"])


@router.post("/generate-pdf")
def generate_pdf(request: GeneratePdfRequest):
    """Render a flattened invoice payload ({"invoiceData": {...}}) to a PDF"""
    try:
        content = pdf_service.render(request.invoiceData)
    except CRMError as e:
        logger.error(f"PDF generation error: {e.message}")
        return JSONResponse(
            status_code=500,
            content={"error": "PDF generation failed", "message": e.message},
        )

    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Length": str(len(content))},
    )
