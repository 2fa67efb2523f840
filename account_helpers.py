"""
Account Helper Functions
Creates users with the role-specific rows each role needs
"""

from datetime import datetime
import random
import string
import logging

from models import User, SchoolAdmin, School, ROLE_STUDENT, ROLE_TEACHER, ROLE_SCHOOL_ADMIN

logger = logging.getLogger(__name__)


class AccountError(Exception):
    """Account cannot be created as requested (duplicate email, unknown school)"""
    pass


def email_exists(session, email):
    return session.query(User.id).filter(User.email == email.lower()).first() is not None


def generate_code(prefix, length=6):
    return f"{prefix}{''.join(random.choices(string.digits, k=length))}"


def generate_teacher_code(session):
    from teacher_models import Teacher

    for _ in range(10):
        code = generate_code('TCH')
        if not session.query(Teacher.id).filter_by(teacher_code=code).first():
            return code
    return generate_code('TCH', 10)


def _require_school(session, school_id):
    school = session.query(School).filter_by(id=school_id).first()
    if not school:
        raise AccountError(f"School {school_id} not found")
    return school


def create_student_rows(session, user, school_id, grade, joining_code=None, parent_name=None, parent_phone=None):
    """Student record and school enrolment for a student user"""
    from student_models import Student, StudentSchool

    student = Student(
        user_id=user.id,
        school_id=school_id,
        student_code=generate_code('STU'),
        full_name=user.full_name,
        email=user.email,
        grade=grade or 'Not Specified',
        phone=user.phone,
        address=user.address,
        parent_name=parent_name,
        parent_phone=parent_phone,
    )
    enrolment = StudentSchool(
        student_id=user.id,
        school_id=school_id,
        grade=grade or 'Not Specified',
        joining_code=joining_code,
        is_active=True,
    )
    session.add_all([student, enrolment])
    return student


def create_account(session, validated):
    """
    Create a user account and its role rows (caller commits)

    Args:
        session: Database session
        validated: Output of validators.validate_account_data

    Returns:
        tuple: (User, extra data dict)

    Raises:
        AccountError for duplicate emails or unknown schools
    """
    from teacher_models import Teacher, TeacherSchool

    email = validated['email'].lower()
    if email_exists(session, email):
        raise AccountError(f"Email {email} already exists")

    role = validated['role']
    user = User(
        email=email,
        full_name=validated['full_name'],
        role=role,
        phone=validated.get('phone'),
        address=validated.get('address'),
        is_active=True,
    )
    user.set_password(validated['password'])
    extra = {}

    if role in (ROLE_STUDENT, ROLE_SCHOOL_ADMIN):
        _require_school(session, validated['school_id'])
        user.school_id = validated['school_id']

    session.add(user)
    session.flush()

    if role == ROLE_STUDENT:
        student = create_student_rows(
            session, user, validated['school_id'], validated['grade'],
            parent_name=validated.get('parent_name'),
            parent_phone=validated.get('parent_phone'),
        )
        session.flush()
        extra = {'student_id': student.id, 'grade': student.grade}

    elif role == ROLE_TEACHER:
        teacher = Teacher(
            user_id=user.id,
            teacher_code=generate_teacher_code(session),
            full_name=user.full_name,
            email=user.email,
            phone=user.phone,
            address=user.address,
            qualification=validated.get('qualification'),
            experience_years=validated.get('experience_years') or 0,
            specialization=validated.get('specialization'),
        )
        session.add(teacher)

        assignments = []
        for index, assignment in enumerate(validated['school_assignments']):
            _require_school(session, assignment['school_id'])
            link = TeacherSchool(
                teacher_id=user.id,
                school_id=assignment['school_id'],
                is_primary=index == 0,
            )
            link.grades = assignment['grades_assigned']
            link.subject_list = assignment['subjects']
            session.add(link)
            assignments.append(assignment['school_id'])
        session.flush()
        extra = {'teacher_id': teacher.id, 'teacher_code': teacher.teacher_code, 'school_ids': assignments}

    elif role == ROLE_SCHOOL_ADMIN:
        admin_link = SchoolAdmin(
            user_id=user.id,
            school_id=validated['school_id'],
            name=user.full_name,
            email=user.email,
            phone=user.phone,
            is_active=True,
        )
        session.add(admin_link)
        session.flush()
        extra = {'school_admin_id': admin_link.id, 'school_id': validated['school_id']}

    logger.info(f"Created {role} account {user.id}")
    return user, extra


def stamp_login(user):
    user.last_login = datetime.utcnow()
