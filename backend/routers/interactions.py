from fastapi import APIRouter, Depends
from pydantic import BaseModel

from database import engine
from services.drug_interactions import check_interactions
from services.reference_store import ReferenceStore

router = APIRouter(tags=["interactions"])


class InteractionCheckRequest(BaseModel):
    medicines: list[str]


def get_reference_store() -> ReferenceStore:
    return ReferenceStore(engine)


@router.post("/drug-interactions")
async def drug_interactions(
    body: InteractionCheckRequest,
    reference_store: ReferenceStore = Depends(get_reference_store),
):
    results = await check_interactions(body.medicines, reference_store.therapeutic_class)
    return {"results": [result.to_dict() for result in results]}
