from timestables.models.teacher import Teacher
from timestables.models.school_class import SchoolClass
from timestables.models.teacher_class import TeacherClass
from timestables.models.teacher_invite import TeacherInvite
from timestables.models.student import Student
from timestables.models.attempt import Attempt
from timestables.models.question_record import QuestionRecord

__all__ = [
    "Teacher", "SchoolClass", "TeacherClass", "TeacherInvite",
    "Student", "Attempt", "QuestionRecord",
]
