from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from sqlalchemy import String, cast
from sqlalchemy.orm import Session

from models.image import Image
from schemas.image import ImageCreate, ImageUpdate

logger = logging.getLogger(__name__)


def list_gallery(db: Session, *, page: int = 1, page_size: int = 24, tag: Optional[str] = None) -> Tuple[List[Image], int]:
    query = db.query(Image)
    if tag:
        # tags is a JSON array of lowercase strings; match on its text form
        query = query.filter(cast(Image.tags, String).like(f'%"{tag.strip().lower()}"%'))
    total = query.count()
    images = (
        query.order_by(Image.created_at.desc(), Image.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return images, total


def list_user_images(db: Session, user_id: str) -> List[Image]:
    return (
        db.query(Image)
        .filter(Image.user_id == user_id)
        .order_by(Image.created_at.desc(), Image.id.desc())
        .all()
    )


def get_image(db: Session, image_id: str) -> Optional[Image]:
    return db.get(Image, image_id)


def get_user_image(db: Session, user_id: str, image_id: str) -> Optional[Image]:
    return db.query(Image).filter(Image.id == image_id, Image.user_id == user_id).first()


def create_image(db: Session, user_id: str, payload: ImageCreate) -> Image:
    image = Image(user_id=user_id, **payload.model_dump())
    db.add(image)
    db.commit()
    db.refresh(image)
    logger.info("image_created image_id=%s user_id=%s", image.id, user_id)
    return image


def update_image(db: Session, image: Image, payload: ImageUpdate) -> Image:
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field == "title" and value is None:
            continue
        setattr(image, field, value if field != "tags" else (value or []))
    db.commit()
    db.refresh(image)
    return image


def delete_image(db: Session, image: Image) -> None:
    image_id = image.id
    db.delete(image)
    db.commit()
    logger.info("image_deleted image_id=%s", image_id)
