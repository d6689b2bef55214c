from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from services.activity_service import delete_all_data_for_user
from services.errors import ValidationError
from services.user_config_service import get_user_config, upsert_user_config

router = APIRouter(tags=["user-config"])


class UserConfigUpdate(BaseModel):
    day_end_offset_minutes: Optional[int] = None
    clear_todo_on_new_day: Optional[bool] = None


@router.get("/user-config")
def read_user_config(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return get_user_config(db, user_id).as_dict()


@router.put("/user-config")
def write_user_config(
    payload: UserConfigUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        values = upsert_user_config(
            db,
            user_id,
            day_end_offset_minutes=payload.day_end_offset_minutes,
            clear_todo_on_new_day=payload.clear_todo_on_new_day,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return values.as_dict()


@router.delete("/account")
def delete_account(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delete_all_data_for_user(db, user_id)
    db.commit()
    return {"success": True}
