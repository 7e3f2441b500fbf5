# cameratogether/delivery/api/collage.py
from fastapi import APIRouter, Request, Depends, HTTPException, Response, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from cameratogether.delivery.schemas.body import CollageRequest
from cameratogether.domain.errors import CollageError
from cameratogether.config.settings import settings
import secrets
import logging
import asyncio

router = APIRouter()
security = HTTPBasic()
logger = logging.getLogger("uvicorn.error")

MEDIA_TYPES = {"jpeg": "image/jpeg", "jpg": "image/jpeg", "png": "image/png"}

def verify_basic_auth(creds: HTTPBasicCredentials = Depends(security)) -> None:
    ok_user = secrets.compare_digest(creds.username, settings.BASIC_AUTH_USERNAME)
    ok_pass = secrets.compare_digest(creds.password, settings.BASIC_AUTH_PASSWORD)
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

ENDPOINT_TIMEOUT_SECONDS = 55

@router.post("/collages", dependencies=[Depends(verify_basic_auth)])
async def create_collage(request: Request, collage_request: CollageRequest):
    request_id = collage_request.id
    fmt = (collage_request.format or settings.SAVE_FORMAT).lower()
    if fmt not in MEDIA_TYPES:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Unsupported format: {fmt}")
    logger.info(f"=== ENDPOINT START for {request_id} ===")

    service = getattr(request.app.state, "collage_service", None)
    if service is None:
        logger.error(f"Service not initialized for request {request_id}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not ready. Please try again in a moment.",
        )

    try:
        data = await asyncio.wait_for(
            service.process_collage(collage_request.model_copy(update={"format": fmt})),
            timeout=ENDPOINT_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.error(f"=== ENDPOINT TIMEOUT for {request_id} after {ENDPOINT_TIMEOUT_SECONDS}s ===")
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="Collage generation timed out")
    except CollageError as e:
        logger.warning(f"=== ENDPOINT REJECTED {request_id}: {e.message} ===")
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)

    logger.info(f"=== ENDPOINT SUCCESS for {request_id} ===")
    return Response(content=data, media_type=MEDIA_TYPES[fmt])
