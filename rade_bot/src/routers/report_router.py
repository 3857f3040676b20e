from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from rade_bot.src.core.app_state import get_report_service
from rade_bot.src.services.report_service import ReportNotFoundError, ReportService

report_router = APIRouter()


@report_router.get("/{report_id}/{report_format}")
async def download_report(report_id: str, report_format: str, reports: ReportService = Depends(get_report_service)):
    try:
        content, media_type, filename = reports.render(report_id, report_format)
    except ReportNotFoundError:
        raise HTTPException(status_code=404, detail="Relatório não encontrado ou expirado.")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
