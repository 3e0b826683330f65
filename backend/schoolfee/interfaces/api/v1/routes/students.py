from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from schoolfee.application.services.access_policy_service import Principal
from schoolfee.application.services.student_service import (
    create_student,
    delete_student,
    get_student,
    list_students,
    serialize_students,
    update_student,
)
from schoolfee.infrastructure.db.session import get_db
from schoolfee.interfaces.api.v1.dependencies.auth import (
    get_current_school_id,
    require_active_subscription,
    require_tenant,
)
from schoolfee.interfaces.api.v1.dependencies.pagination import get_pagination_params
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationParams
from schoolfee.interfaces.api.v1.schemas.student import (
    StudentCreate,
    StudentListResponse,
    StudentResponse,
    StudentUpdate,
)

router = APIRouter(prefix="/students", tags=["students"])


def _serialize_one(db: Session, student) -> dict:
    return serialize_students(db, [student])[0]


@router.get(
    "",
    response_model=StudentListResponse,
    summary="List students",
    description="Students of the caller's school. `search` matches name or admission number.",
)
def get_students(
    class_id: int | None = Query(default=None),
    principal: Principal = Depends(require_tenant),
    pagination: PaginationParams = Depends(get_pagination_params),
    db: Session = Depends(get_db),
):
    students, meta = list_students(
        db=db,
        principal=principal,
        offset=pagination.offset,
        limit=pagination.limit,
        search=pagination.search,
        class_id=class_id,
    )
    return {"items": serialize_students(db, students), "pagination": meta}


@router.post(
    "",
    response_model=StudentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add student",
    description="The student's total fee is copied from the class at enrollment time.",
    responses={
        402: {"description": "Subscription expired"},
        409: {"description": "Duplicate admission number or student limit reached"},
    },
)
def create_student_endpoint(
    payload: StudentCreate,
    principal: Principal = Depends(require_active_subscription),
    school_id: int = Depends(get_current_school_id),
    db: Session = Depends(get_db),
):
    student = create_student(db=db, principal=principal, school_id=school_id, payload=payload)
    return _serialize_one(db, student)


@router.get("/{student_id}", response_model=StudentResponse, summary="Get student")
def get_student_endpoint(
    student_id: int,
    principal: Principal = Depends(require_tenant),
    db: Session = Depends(get_db),
):
    return _serialize_one(db, get_student(db=db, principal=principal, student_id=student_id))


@router.put("/{student_id}", response_model=StudentResponse, summary="Update student")
def update_student_endpoint(
    student_id: int,
    payload: StudentUpdate,
    principal: Principal = Depends(require_active_subscription),
    db: Session = Depends(get_db),
):
    student = update_student(db=db, principal=principal, student_id=student_id, payload=payload)
    return _serialize_one(db, student)


@router.delete("/{student_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete student")
def delete_student_endpoint(
    student_id: int,
    principal: Principal = Depends(require_active_subscription),
    db: Session = Depends(get_db),
):
    delete_student(db=db, principal=principal, student_id=student_id)
