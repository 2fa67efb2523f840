"""
Joining Code Helper Functions
Generation and validation of the per-grade codes students use to register
"""

from datetime import datetime
from dateutil.relativedelta import relativedelta
import random
import re
import logging

from models import JoinCode, School

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 10
USAGE_TYPES = ('single', 'multiple')


def school_initials(name):
    """
    Upper-case initials of the school's words (max 4)

    Examples:
        "Green Valley Public School" -> "GVPS", "" -> "SCH"
    """
    words = re.findall(r'[A-Za-z0-9]+', name or '')
    initials = ''.join(w[0] for w in words).upper()[:4]
    return initials or 'SCH'


def grade_abbreviation(grade):
    """'Grade 5' -> 'G5', 'Pre-K' -> 'PK', 'Kindergarten' -> 'K'"""
    from course_helpers import normalize_grade

    normalized = normalize_grade(grade)
    if normalized.startswith('Grade '):
        return 'G' + normalized[len('Grade '):]
    if normalized == 'Pre-K':
        return 'PK'
    if normalized == 'Kindergarten':
        return 'K'
    return re.sub(r'[^A-Z0-9]', '', normalized.upper())[:3] or 'GEN'


def generate_unique_code(session, school_name, grade, reserved=None):
    """
    Random '<INITIALS>-<GRADE>-<NNN>' code not yet stored

    Args:
        session: Database session
        school_name: Name used for the initials
        grade: Grade the code enrols into
        reserved: Codes already chosen in this batch

    Returns:
        str or None after MAX_CODE_ATTEMPTS collisions
    """
    reserved = reserved or set()
    prefix = f"{school_initials(school_name)}-{grade_abbreviation(grade)}"
    for _ in range(MAX_CODE_ATTEMPTS):
        candidate = f"{prefix}-{random.randint(0, 999):03d}"
        if candidate in reserved:
            continue
        if not session.query(JoinCode.id).filter_by(code=candidate).first():
            return candidate
    return None


def default_expiry():
    return datetime.utcnow() + relativedelta(years=1)


def create_join_codes(session, school, grades, usage_type='multiple', max_uses=None, manual_codes=None):
    """
    Create one joining code per grade for a school

    Args:
        session: Database session (caller commits)
        school: School
        grades: Grades to create codes for
        usage_type: 'single' or 'multiple'
        max_uses: Optional cap on registrations
        manual_codes: Optional {grade: code} overrides

    Returns:
        tuple: (list of JoinCode, list of error strings)
    """
    from course_helpers import normalize_grade

    manual_codes = manual_codes or {}
    if usage_type not in USAGE_TYPES:
        usage_type = 'multiple'
    if usage_type == 'single':
        max_uses = 1

    created = []
    errors = []
    reserved = set()

    for grade in grades:
        normalized = normalize_grade(grade)
        if not normalized:
            continue

        manual = (manual_codes.get(grade) or manual_codes.get(normalized) or '').strip().upper()
        if manual:
            if manual in reserved or session.query(JoinCode.id).filter_by(code=manual).first():
                errors.append(f"Code {manual} already exists")
                continue
            code = manual
        else:
            code = generate_unique_code(session, school.name, normalized, reserved)
            if not code:
                errors.append(f"Could not generate a unique code for {normalized}")
                continue

        reserved.add(code)
        join_code = JoinCode(
            code=code,
            school_id=school.id,
            grade=normalized,
            usage_type=usage_type,
            times_used=0,
            max_uses=max_uses,
            expires_at=default_expiry(),
            is_active=True,
        )
        session.add(join_code)
        created.append(join_code)

    session.flush()
    logger.info(f"Created {len(created)} joining codes for school {school.id}")
    return created, errors


def check_join_code(session, raw_code):
    """
    Look up a joining code and decide whether it can be used

    Returns:
        tuple: (JoinCode or None, School or None, message)
        The JoinCode is None whenever the code cannot be used.
    """
    code = (raw_code or '').strip().upper()
    if not code:
        return None, None, 'Joining code is required'

    join_code = session.query(JoinCode).filter_by(code=code).first()
    if not join_code:
        return None, None, 'Invalid joining code'
    if not join_code.is_active:
        return None, None, 'This joining code is no longer active'
    if join_code.is_expired:
        return None, None, 'This joining code has expired'
    if join_code.is_exhausted:
        return None, None, 'This joining code has reached its usage limit'

    school = session.query(School).filter_by(id=join_code.school_id).first()
    if not school or not school.is_active:
        return None, None, 'School is not active'

    return join_code, school, 'Joining code is valid'


def record_code_use(join_code):
    join_code.times_used = (join_code.times_used or 0) + 1
    join_code.last_used_at = datetime.utcnow()
    if join_code.usage_type == 'single':
        join_code.is_active = False
