from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.deps import get_current_user
from app.models.user import User
from app.services import uploads as uploads_service
from app.services.rate_limit import upload_rate_limit

router = APIRouter()


class ImageUploadRequest(BaseModel):
    image: str = ""


@router.post("", dependencies=[Depends(upload_rate_limit)])
async def upload_image(body: ImageUploadRequest, user: User = Depends(get_current_user)):
    """Base64 or data-URL image; returns its public url."""
    return await uploads_service.upload_image(user, body.image)
