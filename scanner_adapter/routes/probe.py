from fastapi import APIRouter, Response

router = APIRouter(prefix="/probe")


@router.get("/healthy")
def get_healthy() -> Response:
    return Response(status_code=200)


@router.get("/ready")
def get_ready() -> Response:
    return Response(status_code=200)
