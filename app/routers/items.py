import logging
import uuid
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from sqlmodel import Session, select

from app.db.db import get_session
from app.models.item import Item
from app.models.user import User
from app.utils.auth_helper import get_acting_user
from app.utils.form_validator import validate_create_item_form, validate_item_updates
from app.utils.matching import trigger_matching
from app.utils.s3_service import compress_image, delete_s3_object, upload_image, with_image_url


router = APIRouter()
logger = logging.getLogger(__name__)

MAX_UPLOAD_SIZE_MB = 5
MAX_UPLOAD_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024


def get_owned_item(session: Session, item_id: uuid.UUID, user: User, action: str) -> Item:
    item = session.get(Item, item_id)

    if not item:
        raise HTTPException(status_code=404, detail="Item not found")

    if item.user_id != user.id:
        raise HTTPException(status_code=403, detail=f"Unauthorized to {action} this item")

    return item


@router.post("/create")
async def add_item(
    background_tasks: BackgroundTasks,
    item_type: str = Form(...),
    title: str = Form(...),
    description: str = Form(...),
    category: str = Form(...),
    date: str = Form(...),
    location: str = Form(...),
    time: Optional[str] = Form(None),
    image: UploadFile = File(...),
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    form = validate_create_item_form(item_type, title, description, category, date, location, time)

    raw_bytes = await image.read()

    if len(raw_bytes) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail=f"Image exceeds {MAX_UPLOAD_SIZE_MB}MB limit")

    buffer, ext = compress_image(raw_bytes)
    image_key = upload_image(buffer, ext, user.public_id)

    db_item = Item(
        user_id=user.id,
        type=form.item_type,
        category=form.category,
        title=form.title,
        description=form.description,
        location=form.location,
        date=form.date,
        time=form.time,
        image=image_key,
    )

    session.add(db_item)
    session.commit()
    session.refresh(db_item)

    # Runs after the response is sent; matching problems never fail creation
    background_tasks.add_task(trigger_matching, db_item.id, db_item.type)

    return db_item.id


@router.get("/all")
async def get_all_items(
    type: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    session: Session = Depends(get_session),
):
    query = select(Item).order_by(Item.created_at.desc())

    if type:
        query = query.where(Item.type == type)
    if category:
        query = query.where(Item.category == category)
    if status:
        query = query.where(Item.status == status)

    items = session.exec(query).all()

    return {"items": [with_image_url(item) for item in items]}


@router.get("/mine")
async def get_my_items(
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    items = session.exec(
        select(Item)
        .where(Item.user_id == user.id)
        .order_by(Item.created_at.desc())
    ).all()

    return {"items": [with_image_url(item) for item in items]}


@router.get("/{item_id}")
async def get_item(
    item_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    result = session.exec(
        select(Item, User)
        .join(User, User.id == Item.user_id)
        .where(Item.id == item_id)
    ).first()

    if not result:
        raise HTTPException(status_code=404, detail="Item not found")

    item, reporter = result

    return {
        "item": with_image_url(item),
        "reporter": {
            "public_id": reporter.public_id,
            "name": reporter.name,
            "image": reporter.image,
        },
    }


@router.patch("/{item_id}")
async def update_item(
    item_id: uuid.UUID,
    updates: dict,
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    item = get_owned_item(session, item_id, user, "edit")

    for field, value in validate_item_updates(updates).items():
        setattr(item, field, value)

    session.add(item)
    session.commit()
    session.refresh(item)

    return item.id


@router.post("/{item_id}/resolve")
async def resolve_item(
    item_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    item = get_owned_item(session, item_id, user, "resolve")

    if item.status != "matched":
        raise HTTPException(status_code=400, detail="Only matched items can be resolved")

    item.status = "resolved"
    session.add(item)
    session.commit()

    return {"ok": True}


@router.delete("/{item_id}")
async def delete_item(
    item_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    item = get_owned_item(session, item_id, user, "delete")

    delete_s3_object(item.image)

    session.delete(item)
    session.commit()

    return True
