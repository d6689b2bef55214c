from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from services.achievement_service import (
    create_achievement,
    delete_achievement,
    list_achievements,
    update_achievement,
)
from services.errors import NotFoundError, ValidationError

router = APIRouter(prefix="/achievements", tags=["achievements"])


class AchievementCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    reward: str = ""
    type: Literal["habit", "period", "todo"]
    activity_id: Optional[str] = None
    period: Optional[Literal["daily", "weekly", "monthly"]] = None
    goal_count: int = Field(default=1, ge=1)
    repeatable: bool = False


class AchievementUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    reward: Optional[str] = None
    goal_count: Optional[int] = Field(default=None, ge=1)
    repeatable: Optional[bool] = None


@router.get("")
def get_achievements(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    achievements = list_achievements(db, user_id)
    db.commit()
    return {"achievements": achievements}


@router.post("", status_code=201)
def post_achievement(
    req: AchievementCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        achievement = create_achievement(
            db,
            user_id,
            title=req.title,
            reward=req.reward,
            type=req.type,
            activity_id=req.activity_id,
            period=req.period,
            goal_count=req.goal_count,
            repeatable=req.repeatable,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return {"achievement": achievement}


@router.put("/{achievement_id}")
def put_achievement(
    achievement_id: str,
    req: AchievementUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    updates = req.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="At least one field must be provided")
    try:
        achievement = update_achievement(db, user_id, achievement_id, **updates)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return {"achievement": achievement}


@router.delete("/{achievement_id}")
def remove_achievement(
    achievement_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        delete_achievement(db, user_id, achievement_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return {"success": True}
