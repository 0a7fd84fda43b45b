from app.core.models.institution import Institution
from app.core.models.school_year import SchoolYear
from app.core.models.period import Period, SubPeriod
from app.core.models.subject import Subject
from app.core.models.course import Course
from app.core.models.course_subject_assignment import AssignmentSchedule, CourseSubjectAssignment
from app.core.models.grade_scale import GradeScale, GradeScaleDetail
from app.core.models.grade import Grade, Insumo
from app.core.models.student import Student
from app.core.models.enrollment import Enrollment

__all__ = [
    "AssignmentSchedule",
    "Course",
    "CourseSubjectAssignment",
    "Enrollment",
    "Grade",
    "GradeScale",
    "GradeScaleDetail",
    "Institution",
    "Insumo",
    "Period",
    "SchoolYear",
    "Student",
    "SubPeriod",
    "Subject",
]
