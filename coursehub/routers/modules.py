import uuid

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session as DbSession

from coursehub.database import get_db
from coursehub.models.module import CourseModule
from coursehub.models.user import User
from coursehub.schemas.course import ModuleIn
from coursehub.services.authz import require_tutor
from coursehub.services.course_content import add_module_tree, module_detail, next_order_index
from coursehub.services.course_totals import recompute_course_totals
from coursehub.services.ownership import delete_module_children, get_course_module, get_owned_course
from coursehub.validation import MODULE_RULES, validated

router = APIRouter(prefix="/courses/{course_id}/modules", tags=["modules"])


@router.post("", status_code=201)
def create_module(
    course_id: uuid.UUID,
    user: User = Depends(require_tutor),
    payload: ModuleIn = Depends(validated(MODULE_RULES, ModuleIn)),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)

    order_index = next_order_index(db, CourseModule.order_index, CourseModule.course_id == course.id)
    module = add_module_tree(db, course, payload, order_index)
    recompute_course_totals(db, course)
    db.commit()
    db.refresh(module)

    return {"success": True, "message": "Module created successfully", "module": module_detail(db, module)}


@router.get("")
def list_modules(course_id: uuid.UUID, user: User = Depends(require_tutor), db: DbSession = Depends(get_db)):
    course = get_owned_course(db, course_id, user)
    rows = db.execute(
        select(CourseModule)
        .where(CourseModule.course_id == course.id)
        .order_by(CourseModule.order_index, CourseModule.created_at)
    ).scalars().all()
    return {"success": True, "modules": [module_detail(db, m) for m in rows]}


@router.get("/{module_id}")
def get_module(
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    user: User = Depends(require_tutor),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)
    return {"success": True, "module": module_detail(db, module)}


@router.put("/{module_id}")
def update_module(
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    user: User = Depends(require_tutor),
    payload: ModuleIn = Depends(validated(MODULE_RULES, ModuleIn)),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)

    module.title = payload.title.strip()
    if payload.description is not None:
        module.description = payload.description.strip()
    if payload.order is not None:
        module.order_index = payload.order

    db.commit()
    db.refresh(module)
    return {"success": True, "message": "Module updated successfully", "module": module_detail(db, module)}


@router.delete("/{module_id}")
def delete_module(
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    user: User = Depends(require_tutor),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)

    delete_module_children(db, module)
    db.delete(module)
    recompute_course_totals(db, course)
    db.commit()

    return {"success": True, "message": "Module deleted successfully"}
