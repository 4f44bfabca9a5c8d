from fastapi import APIRouter
from gateway.routers.graphql import router as graphql_router

router = APIRouter(prefix="")
router.include_router(graphql_router)


@router.get("/health")
async def health():
    return {"message": "alive"}
