import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DbSession

from coursehub.database import get_db
from coursehub.models.assignment import Assignment
from coursehub.models.user import User
from coursehub.schemas.course import AssignmentIn, AssignmentOut, dump
from coursehub.services.authz import require_tutor
from coursehub.services.course_content import module_assignments, new_assignment, next_order_index
from coursehub.services.course_totals import recompute_course_totals
from coursehub.services.ownership import (
    delete_assignment_rows,
    get_course_module,
    get_module_assignment,
    get_owned_course,
)
from coursehub.validation import ASSIGNMENT_RULES, validated

router = APIRouter(prefix="/courses/{course_id}/modules/{module_id}/assignments", tags=["assignments"])


@router.post("", status_code=201)
def add_assignment(
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    user: User = Depends(require_tutor),
    payload: AssignmentIn = Depends(validated(ASSIGNMENT_RULES, AssignmentIn)),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)

    order_index = next_order_index(db, Assignment.order_index, Assignment.module_id == module.id)
    assignment = new_assignment(course, module, payload, order_index)
    db.add(assignment)
    recompute_course_totals(db, course)
    db.commit()
    db.refresh(assignment)

    return {"success": True, "message": "Assignment added successfully", "assignment": dump(AssignmentOut, assignment)}


@router.get("")
def list_assignments(
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    user: User = Depends(require_tutor),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)
    return {
        "success": True,
        "assignments": [dump(AssignmentOut, a) for a in module_assignments(db, module.id)],
    }


@router.put("/{assignment_id}")
def update_assignment(
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    assignment_id: uuid.UUID,
    user: User = Depends(require_tutor),
    payload: AssignmentIn = Depends(validated(ASSIGNMENT_RULES, AssignmentIn)),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)
    assignment = get_module_assignment(db, module, assignment_id)

    assignment.title = payload.title.strip()
    assignment.instructions = payload.instructions.strip()
    if payload.description is not None:
        assignment.description = payload.description.strip()
    if "due_date" in payload.model_fields_set:
        assignment.due_date = payload.due_date.replace(tzinfo=None) if payload.due_date else None
    if payload.order is not None:
        assignment.order_index = payload.order

    recompute_course_totals(db, course)
    db.commit()
    db.refresh(assignment)
    return {
        "success": True,
        "message": "Assignment updated successfully",
        "assignment": dump(AssignmentOut, assignment),
    }


@router.delete("/{assignment_id}")
def delete_assignment(
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    assignment_id: uuid.UUID,
    user: User = Depends(require_tutor),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)
    assignment = get_module_assignment(db, module, assignment_id)

    delete_assignment_rows(db, Assignment.id == assignment.id)
    recompute_course_totals(db, course)
    db.commit()
    return {"success": True, "message": "Assignment deleted successfully"}
