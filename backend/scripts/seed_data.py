from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from schoolfee.application.services.receipt_service import next_receipt_number
from schoolfee.application.services.security_service import hash_password
from schoolfee.domain.clock import utc_now
from schoolfee.domain.roles import AppRole
from schoolfee.domain.subscription import TRIAL_DURATION, PlanType, SubscriptionStatus, max_students_for
from schoolfee.infrastructure.db.models import AdminProfile, FeeStructure, Payment, School, Student, User, UserRole
from schoolfee.infrastructure.db.session import SessionLocal

DEMO_CLASSES = [
    ("Grade 1", Decimal("15000.00")),
    ("Grade 2", Decimal("16500.00")),
    ("Grade 3", Decimal("18000.00")),
]


def create_user_if_missing(db: Session, email: str, password: str) -> User:
    existing = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if existing is not None:
        return existing
    user = User(email=email, hashed_password=hash_password(password), is_active=True)
    db.add(user)
    db.flush()
    return user


def grant_role_if_missing(db: Session, user_id: int, role: AppRole) -> None:
    existing = db.execute(
        select(UserRole).where(UserRole.user_id == user_id, UserRole.role == role.value)
    ).scalar_one_or_none()
    if existing is None:
        db.add(UserRole(user_id=user_id, role=role.value))


def create_school_if_missing(db: Session, name: str, email: str) -> School:
    school = db.execute(select(School).where(School.name == name)).scalar_one_or_none()
    if school is not None:
        return school
    now = utc_now()
    school = School(
        name=name,
        email=email,
        subscription_status=SubscriptionStatus.trial,
        plan_type=PlanType.small,
        max_students=max_students_for(PlanType.small),
        trial_start=now,
        trial_end=now + TRIAL_DURATION,
        monthly_target=Decimal("100000.00"),
    )
    db.add(school)
    db.flush()
    return school


def attach_profile_if_missing(db: Session, user: User, full_name: str, school_id: int | None) -> None:
    if db.get(AdminProfile, user.id) is None:
        db.add(AdminProfile(id=user.id, email=user.email, full_name=full_name, school_id=school_id))


def create_class_if_missing(db: Session, school_id: int, class_name: str, fee_amount: Decimal) -> FeeStructure:
    fee_structure = db.execute(
        select(FeeStructure).where(FeeStructure.school_id == school_id, FeeStructure.class_name == class_name)
    ).scalar_one_or_none()
    if fee_structure is not None:
        return fee_structure
    fee_structure = FeeStructure(school_id=school_id, class_name=class_name, fee_amount=fee_amount)
    db.add(fee_structure)
    db.flush()
    return fee_structure


def enroll_if_missing(db: Session, school_id: int, admission_no: str, full_name: str, fee_class: FeeStructure) -> Student:
    student = db.execute(
        select(Student).where(Student.school_id == school_id, Student.admission_no == admission_no)
    ).scalar_one_or_none()
    if student is not None:
        return student
    student = Student(
        school_id=school_id,
        admission_no=admission_no,
        full_name=full_name,
        parent_name=f"Parent of {full_name}",
        class_id=fee_class.id,
        total_fee=fee_class.fee_amount,
    )
    db.add(student)
    db.flush()
    return student


def record_payment_if_unpaid(db: Session, student: Student, amount: Decimal) -> None:
    paid = db.execute(select(Payment.id).where(Payment.student_id == student.id)).first()
    if paid is not None:
        return
    db.add(
        Payment(
            school_id=student.school_id,
            student_id=student.id,
            amount=amount,
            payment_date=utc_now(),
            payment_method="Cash",
            receipt_number=next_receipt_number(db),
        )
    )
    db.flush()


def main() -> None:
    db = SessionLocal()
    try:
        owner = create_user_if_missing(db=db, email="owner@schoolfee.local", password="owner123")
        attach_profile_if_missing(db=db, user=owner, full_name="Platform Owner", school_id=None)
        grant_role_if_missing(db=db, user_id=owner.id, role=AppRole.super_admin)

        school = create_school_if_missing(db=db, name="Hillside Academy", email="admin@hillside.local")
        admin = create_user_if_missing(db=db, email="admin@hillside.local", password="admin123")
        attach_profile_if_missing(db=db, user=admin, full_name="Hillside Admin", school_id=school.id)
        grant_role_if_missing(db=db, user_id=admin.id, role=AppRole.admin)

        classes = [
            create_class_if_missing(db=db, school_id=school.id, class_name=name, fee_amount=amount)
            for name, amount in DEMO_CLASSES
        ]
        for index in range(12):
            fee_class = classes[index % len(classes)]
            student = enroll_if_missing(
                db=db,
                school_id=school.id,
                admission_no=f"HSA-{index + 1:03d}",
                full_name=f"Demo Student {index + 1}",
                fee_class=fee_class,
            )
            if index % 3 != 2:
                half_fee = (fee_class.fee_amount / 2).quantize(Decimal("0.01"))
                record_payment_if_unpaid(db=db, student=student, amount=half_fee)

        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    main()
