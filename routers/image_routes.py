# routers/image_routes.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from database import get_db
from models.user import User
from schemas.image import GalleryPage, ImageCreate, ImageOut, ImageUpdate
from services import image_service
from services.supabase_auth import get_current_db_user

logger = logging.getLogger(__name__)

router = APIRouter()


# Public gallery
@router.get("/api/gallery", response_model=GalleryPage)
def get_gallery(
    page: int = Query(1, ge=1),
    page_size: int = Query(24, ge=1, le=100),
    tag: Optional[str] = None,
    db: Session = Depends(get_db),
):
    images, total = image_service.list_gallery(db, page=page, page_size=page_size, tag=tag)
    return GalleryPage(
        images=[ImageOut.model_validate(img) for img in images],
        page=page,
        page_size=page_size,
        total=total,
    )


# ─── Owner CRUD ──────────────────────────────────────────────────

@router.get("/api/images", response_model=List[ImageOut])
def get_my_images(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    return image_service.list_user_images(db, user.id)


@router.post("/api/images", response_model=ImageOut, status_code=201)
def create_image(
    payload: ImageCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    return image_service.create_image(db, user.id, payload)


def _owned_image(db: Session, user: User, image_id: str):
    image = image_service.get_user_image(db, user.id, image_id)
    if image is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return image


@router.get("/api/images/{image_id}", response_model=ImageOut)
def get_image(
    image_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    return _owned_image(db, user, image_id)


@router.put("/api/images/{image_id}", response_model=ImageOut)
def update_image(
    image_id: str,
    payload: ImageUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    image = _owned_image(db, user, image_id)
    return image_service.update_image(db, image, payload)


@router.delete("/api/images/{image_id}", status_code=204)
def delete_image(
    image_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    image = _owned_image(db, user, image_id)
    image_service.delete_image(db, image)
    return Response(status_code=204)
