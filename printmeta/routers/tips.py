from fastapi import APIRouter, Depends

from printmeta.schemas.extraction import MakerTipResponse
from printmeta.services.maker_tip import MakerTipService, maker_tip_service

router = APIRouter(tags=["Maker Tip"])


def get_maker_tip_service() -> MakerTipService:
    return maker_tip_service


@router.get("/maker-tip", response_model=MakerTipResponse)
async def get_maker_tip(service: MakerTipService = Depends(get_maker_tip_service)):
    """Tip of the day. Cached for the calendar day; falls back to a built-in tip on failure."""
    return await service.get_tip()
