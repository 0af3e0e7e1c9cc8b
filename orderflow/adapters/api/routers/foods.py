# orderflow/adapters/api/routers/foods.py
from typing import List

from fastapi import APIRouter, Depends

from orderflow.adapters.api.dependencies import get_catalog_use_case
from orderflow.core.domain.models import CatalogEntry
from orderflow.core.use_cases.catalog_popularity import GetCatalogWithPopularity

router = APIRouter(prefix="/foods", tags=["Catalog"])


@router.get(
    "",
    response_model=List[CatalogEntry],
    summary="Food Catalog with Popularity",
)
async def list_foods(
    use_case: GetCatalogWithPopularity = Depends(get_catalog_use_case),
):
    """
    Every food item with `orderedByCount`, `orderedQty` and `isBestseller`.
    Popularity is recomputed at most once per cache window, however many
    clients ask at the same time.
    """
    return await use_case.execute()
