"""
Roster Service - which classes and pupils a session can see.

Queries shared by the teacher, attainment and admin routes. Pupils are
handed to the attainment aggregations as plain dicts
({id, name, class_id, class_label}).
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from timestables.models.school_class import SchoolClass, normalise_class_label, year_from_label
from timestables.models.student import Student
from timestables.models.teacher_class import TeacherClass
from timestables.sessions import TeacherSession

# Class letter order within a year group
LETTER_ORDER = {"M": 0, "B": 1}


def class_sort_key(klass: SchoolClass):
    """Year ascending, then M before B, then label."""
    year = klass.year_group if klass.year_group is not None else year_from_label(klass.class_label)
    letter = (klass.class_label or "")[:1]
    return (year if year is not None else 0, LETTER_ORDER.get(letter, 9), klass.class_label or "")


def sort_classes(classes) -> List[SchoolClass]:
    return sorted(classes, key=class_sort_key)


def serialize_class(klass: SchoolClass) -> dict:
    return {
        "id": str(klass.id),
        "class_label": klass.class_label,
        "year_group": klass.year_group,
    }


def visible_classes(db: Session, session: TeacherSession) -> List[SchoolClass]:
    """All classes for an admin; linked classes for anyone else."""
    query = db.query(SchoolClass)
    if not session.is_admin:
        query = query.join(TeacherClass, TeacherClass.class_id == SchoolClass.id).filter(
            TeacherClass.teacher_id == session.teacher_id
        )
    return sort_classes(query.all())


def find_class(db: Session, class_id: Optional[str] = None,
               class_label: Optional[str] = None) -> Optional[SchoolClass]:
    if class_id:
        return db.get(SchoolClass, class_id)
    if class_label:
        label = normalise_class_label(class_label)
        return db.query(SchoolClass).filter(SchoolClass.class_label == label).first()
    return None


def pupil_dict(student: Student) -> dict:
    return {
        "id": student.id,
        "name": student.full_name,
        "class_id": student.class_id,
        "class_label": student.class_label,
    }


def pupils_in_classes(db: Session, class_ids: List[str]) -> List[Student]:
    if not class_ids:
        return []
    return db.query(Student).filter(
        Student.class_id.in_(class_ids)
    ).order_by(Student.last_name, Student.first_name).all()


def classes_in_year(db: Session, year: int) -> List[SchoolClass]:
    return sort_classes(
        db.query(SchoolClass).filter(SchoolClass.year_group == year).all()
    )
