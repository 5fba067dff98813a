from __future__ import annotations

from fastapi import APIRouter, Response
from starlette.concurrency import run_in_threadpool

from .. import metriche

router = APIRouter(tags=["metrics"])


@router.get("/metrics", include_in_schema=False)
async def api_metriche() -> Response:
    # Esposto in chiaro: in produzione va raggiunto solo dalla rete interna
    contenuto, media_type = await run_in_threadpool(metriche.esporta)
    return Response(content=contenuto, media_type=media_type)
