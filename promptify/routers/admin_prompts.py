from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import InvalidRequest
from ..schemas import PromptImportPayload
from ..services.catalog import export_prompts, import_prompts
from ..utils import require_admin_profile

router = APIRouter(prefix="/api/admin/prompts", tags=["admin", "prompts"])


@router.get("/export")
async def admin_prompts_export(
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin_profile),
):
    return JSONResponse(await export_prompts(db))


@router.post("/import")
async def admin_prompts_import(
    payload: PromptImportPayload,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin_profile),
):
    if not payload.prompts:
        raise InvalidRequest("No prompts provided")
    return await import_prompts(db, payload.prompts, patch=payload.patch)
