from fastapi import APIRouter, Depends

from marquee_recommendation.context import DiscoveryContext

from app.deps.deps import get_ctx
from app.schemas import IndexRequest

router = APIRouter(prefix="/v1/index", tags=["index"])


@router.post("", status_code=201)
async def index_media(req: IndexRequest, ctx: DiscoveryContext = Depends(get_ctx)):
    n = await ctx.search.index_media(req.items)
    return {"ok": True, "indexed": n}


@router.delete("/{media_id}")
async def remove_from_index(media_id: str, ctx: DiscoveryContext = Depends(get_ctx)):
    removed = await ctx.search.remove_from_index(media_id)
    return {"ok": True, "removed": removed}


@router.get("/stats")
async def index_stats(ctx: DiscoveryContext = Depends(get_ctx)):
    return await ctx.search.index_stats()
