from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from services.activity_service import (
    activity_snapshot,
    create_activity,
    delete_activity,
    get_activity_calendar,
    get_activity_history,
    list_activities,
    update_activity,
    update_activity_count,
)
from services.errors import NotFoundError, ValidationError

router = APIRouter(prefix="/activities", tags=["activities"])


class ActivityCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: Optional[str] = None
    period: Literal["daily", "weekly", "monthly"]
    goal_count: int = Field(default=1, ge=1)
    stacked_activity_id: Optional[str] = None
    task: bool = False
    archive_task: bool = False


class ActivityUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    goal_count: Optional[int] = Field(default=None, ge=1)
    stacked_activity_id: Optional[str] = None
    archived: Optional[bool] = None


class CountUpdateRequest(BaseModel):
    delta: int = Field(ge=-1, le=1)


@router.get("")
def get_activities(
    period: Literal["daily", "weekly", "monthly"],
    archived: bool = False,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return {"activities": list_activities(db, user_id, period, archived=archived)}


@router.post("", status_code=201)
def post_activity(
    req: ActivityCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        activity = create_activity(
            db,
            user_id,
            title=req.title,
            description=req.description,
            period=req.period,
            goal_count=req.goal_count,
            stacked_activity_id=req.stacked_activity_id,
            task=req.task,
            archive_task=req.archive_task,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return {"activity": activity}


@router.get("/{activity_id}")
def get_activity(
    activity_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return {"activity": activity_snapshot(db, user_id, activity_id)}
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.put("/{activity_id}")
def put_activity(
    activity_id: str,
    req: ActivityUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    updates = req.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="At least one field must be provided")
    try:
        activity = update_activity(db, user_id, activity_id, **updates)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return {"activity": activity}


@router.delete("/{activity_id}")
def remove_activity(
    activity_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        delete_activity(db, user_id, activity_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return {"success": True}


@router.get("/{activity_id}/history")
def activity_history(
    activity_id: str,
    limit: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return get_activity_history(db, user_id, activity_id, limit=limit)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/{activity_id}/history")
def post_activity_count(
    activity_id: str,
    req: CountUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if req.delta == 0:
        raise HTTPException(status_code=400, detail="delta must be 1 or -1")
    try:
        count, completed = update_activity_count(db, user_id, activity_id, req.delta)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return {
        "count": count,
        "completed_achievements": [c.as_dict() for c in completed],
    }


@router.get("/{activity_id}/calendar")
def activity_calendar(
    activity_id: str,
    year: int,
    month: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return get_activity_calendar(db, user_id, activity_id, year, month)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
