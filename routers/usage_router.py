"""
Usage Router - legacy rolling message count for reporting
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.utils.responses import success_response, ledger_error_response
from config.settings import CLASSIFICATION_REGULAR
from database import get_db
from services.ledger_errors import UnknownClassification
from services.usage_stats_service import UsageStatsService

usage_router = APIRouter(prefix="/api/usage", tags=["usage"])


@usage_router.get("/stats/{user_id}")
async def get_usage_stats(
    user_id: str,
    classification: str = Query(CLASSIFICATION_REGULAR),
    db: AsyncSession = Depends(get_db),
):
    try:
        stats = await UsageStatsService(db).get_usage_stats(user_id, classification)
    except UnknownClassification as e:
        return ledger_error_response(e)
    return success_response(stats)
