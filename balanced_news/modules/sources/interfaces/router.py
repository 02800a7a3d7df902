"""Source API routes."""

from fastapi import APIRouter, Depends, Query

from balanced_news.core.interfaces.http.response import ApiResponse
from balanced_news.modules.sources.application.catalog import SourceCatalog
from balanced_news.modules.sources.application.dependencies import (
    get_source_catalog,
    get_source_selector,
)
from balanced_news.modules.sources.application.selector import SourceSelector
from balanced_news.modules.sources.domain.bias import BiasCoordinate
from balanced_news.modules.sources.interfaces.schemas import (
    SelectedSourceResponse,
    SourceResponse,
    SourceStatsResponse,
    get_bias_coordinate,
)

router = APIRouter(prefix="/sources", tags=["sources"])


@router.get(
    "",
    response_model=ApiResponse[list[SourceResponse]],
    summary="获取信源列表",
    description="返回当前 catalog 快照中的全部信源",
)
async def list_sources(
    catalog: SourceCatalog = Depends(get_source_catalog),
) -> ApiResponse[list[SourceResponse]]:
    snapshot = catalog.snapshot()
    return ApiResponse.items(
        [SourceResponse.from_entity(s) for s in snapshot.sources],
        stage=snapshot.stage.value,
    )


@router.get(
    "/stats",
    response_model=ApiResponse[SourceStatsResponse],
    summary="获取信源统计",
)
async def get_source_stats(
    catalog: SourceCatalog = Depends(get_source_catalog),
) -> ApiResponse[SourceStatsResponse]:
    return ApiResponse.success(data=SourceStatsResponse(**catalog.stats()))


@router.get(
    "/pick",
    response_model=ApiResponse[list[SelectedSourceResponse]],
    summary="按偏好坐标挑选信源",
    description="诊断用：返回给定坐标下 feed 会使用的信源组合",
)
async def pick_sources(
    bias: BiasCoordinate = Depends(get_bias_coordinate),
    friendly_count: int | None = Query(None, ge=0, le=10),
    opposing_count: int | None = Query(None, ge=0, le=10),
    category: str | None = Query(None, max_length=50, description="分类过滤"),
    selector: SourceSelector = Depends(get_source_selector),
) -> ApiResponse[list[SelectedSourceResponse]]:
    picks = selector.pick(
        bias,
        friendly_count=friendly_count,
        opposing_count=opposing_count,
        category_filter=category,
    )
    return ApiResponse.items(
        [SelectedSourceResponse.from_selected(p) for p in picks],
        x=bias.x,
        y=bias.y,
    )
