from fastapi import APIRouter, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
def metrics(request: Request):
    # Serves whatever is cached; upstream failures never turn into HTTP errors here.
    publisher = request.app.state.publisher
    return Response(content=generate_latest(publisher.registry), media_type=CONTENT_TYPE_LATEST)
