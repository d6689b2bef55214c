from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from services.errors import NotFoundError, ValidationError
from services.schedule_service import (
    add_date_config,
    add_day_config,
    get_scheduled_dates,
    list_date_configs,
    list_day_configs,
    remove_date_config,
    remove_day_config,
    reorder_date_configs,
    reorder_day_configs,
)
from services.todo_service import (
    add_todo_item,
    complete_todo_item,
    list_todo_items,
    populate_todo_for_today,
    remove_todo_item,
    reorder_todo_items,
)

router = APIRouter(tags=["todo"])


class TodoItemCreateRequest(BaseModel):
    activity_id: str = Field(min_length=1)


class ReorderRequest(BaseModel):
    ordered_ids: list[str]


class DayConfigCreateRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    activity_id: str = Field(min_length=1)


class DayConfigReorderRequest(ReorderRequest):
    day_of_week: int = Field(ge=0, le=6)


class DateConfigCreateRequest(BaseModel):
    date: str = Field(min_length=10, max_length=10)
    activity_id: str = Field(min_length=1)


class DateConfigReorderRequest(ReorderRequest):
    date: str = Field(min_length=10, max_length=10)


# ─── Todo items ───


@router.get("/todo-items")
def get_todo_items(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return {"todo_items": list_todo_items(db, user_id)}


@router.post("/todo-items", status_code=201)
def post_todo_item(
    req: TodoItemCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        item = add_todo_item(db, user_id, req.activity_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return {"todo_item": item}


@router.post("/todo-items/populate")
def populate_todo_items(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    items = populate_todo_for_today(db, user_id)
    db.commit()
    return {"todo_items": items}


@router.put("/todo-items/reorder")
def put_todo_order(
    req: ReorderRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        reorder_todo_items(db, user_id, req.ordered_ids)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return {"success": True}


@router.post("/todo-items/{todo_item_id}/complete")
def post_todo_complete(
    todo_item_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        result = complete_todo_item(db, user_id, todo_item_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return {"success": True, **result}


@router.delete("/todo-items/{todo_item_id}")
def delete_todo_item(
    todo_item_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        remove_todo_item(db, user_id, todo_item_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return {"success": True}


# ─── Weekly schedule ───


@router.get("/todo-day-configs")
def get_day_configs(
    day_of_week: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return {"configs": list_day_configs(db, user_id, day_of_week)}
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/todo-day-configs", status_code=201)
def post_day_config(
    req: DayConfigCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        config = add_day_config(db, user_id, req.day_of_week, req.activity_id)
    except (NotFoundError, ValidationError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return {"config": config}


@router.put("/todo-day-configs/reorder")
def put_day_config_order(
    req: DayConfigReorderRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        reorder_day_configs(db, user_id, req.day_of_week, req.ordered_ids)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return {"success": True}


@router.delete("/todo-day-configs/{config_id}")
def delete_day_config(
    config_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        remove_day_config(db, user_id, config_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return {"success": True}


# ─── Date schedule ───


@router.get("/todo-date-configs")
def get_date_configs(
    date: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return {"configs": list_date_configs(db, user_id, date)}
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/todo-date-configs/dates")
def get_date_config_dates(
    year: int,
    month: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return {"dates": get_scheduled_dates(db, user_id, year, month)}
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/todo-date-configs", status_code=201)
def post_date_config(
    req: DateConfigCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        config = add_date_config(db, user_id, req.date, req.activity_id)
    except (NotFoundError, ValidationError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return {"config": config}


@router.put("/todo-date-configs/reorder")
def put_date_config_order(
    req: DateConfigReorderRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        reorder_date_configs(db, user_id, req.date, req.ordered_ids)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return {"success": True}


@router.delete("/todo-date-configs/{config_id}")
def delete_date_config(
    config_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        remove_date_config(db, user_id, config_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return {"success": True}
