from db_single import get_session
from models import Attendance
from conftest import client_for


def apply_for_leave(teacher, school_id, start='2026-03-02', end='2026-03-04'):
    return teacher.post('/api/teacher/leaves', json={
        'school_id': school_id,
        'start_date': start,
        'end_date': end,
        'leave_type': 'Sick',
        'reason': 'Flu',
    })


def test_mark_and_update_attendance(app, seed):
    teacher = client_for(app, 'teacher@school.com')
    payload = {'school_id': seed['school_id'], 'date': '2026-03-02', 'status': 'Present', 'check_in_time': '08:55'}

    first = teacher.post('/api/teacher/attendance', json=payload)
    assert first.status_code == 201
    assert first.get_json()['message'] == 'Attendance marked successfully'

    second = teacher.post('/api/teacher/attendance', json={**payload, 'status': 'Late'})
    assert second.status_code == 200
    assert second.get_json()['message'] == 'Attendance updated successfully'
    assert second.get_json()['attendance']['status'] == 'Late'

    history = teacher.get('/api/teacher/attendance').get_json()
    assert len(history['attendance']) == 1
    assert history['stats']['late_count'] == 1
    assert history['stats']['percentage'] == 100.0


def test_attendance_validation_and_access(app, seed):
    teacher = client_for(app, 'teacher@school.com')

    bad_status = teacher.post('/api/teacher/attendance', json={
        'school_id': seed['school_id'], 'date': '2026-03-02', 'status': 'Holiday',
    })
    assert bad_status.status_code == 400

    bad_time = teacher.post('/api/teacher/attendance', json={
        'school_id': seed['school_id'], 'date': '2026-03-02', 'check_in_time': '8am',
    })
    assert bad_time.status_code == 400

    other_school = teacher.post('/api/teacher/attendance', json={
        'school_id': seed['other_school_id'], 'date': '2026-03-02',
    })
    assert other_school.status_code == 403


def test_leave_request_notifies_school_admin(app, seed):
    teacher = client_for(app, 'teacher@school.com')
    response = apply_for_leave(teacher, seed['school_id'])
    assert response.status_code == 201
    leave = response.get_json()['leave']
    assert leave['status'] == 'Pending'
    assert leave['total_days'] == 3

    principal = client_for(app, 'principal@school.com')
    inbox = principal.get('/api/notifications/user').get_json()['notifications']
    assert [n['title'] for n in inbox] == ['New Leave Request']

    other = client_for(app, 'other.principal@school.com')
    assert other.get('/api/notifications/user').get_json()['notifications'] == []


def test_leave_dates_are_validated(app, seed):
    teacher = client_for(app, 'teacher@school.com')
    response = apply_for_leave(teacher, seed['school_id'], start='2026-03-04', end='2026-03-02')
    assert response.status_code == 400
    assert response.get_json()['details'] == 'end_date: End date must be after start date'

    assert apply_for_leave(teacher, seed['other_school_id']).status_code == 403


def test_approving_leave_marks_attendance(app, seed):
    teacher = client_for(app, 'teacher@school.com')
    leave_id = apply_for_leave(teacher, seed['school_id']).get_json()['leave']['id']

    principal = client_for(app, 'principal@school.com')
    pending = principal.get('/api/school-admin/leaves?status=Pending').get_json()['leaves']
    assert [l['id'] for l in pending] == [leave_id]
    assert pending[0]['teacher_name'] == 'Tara Teacher'

    response = principal.patch(f'/api/school-admin/leaves/{leave_id}', json={'action': 'approve', 'notes': 'Get well'})
    assert response.status_code == 200
    assert response.get_json()['leave']['status'] == 'Approved'

    session = get_session()
    try:
        rows = session.query(Attendance).filter_by(user_id=seed['teacher_id']).order_by(Attendance.date).all()
        assert [r.date.isoformat() for r in rows] == ['2026-03-02', '2026-03-03', '2026-03-04']
        assert {r.status for r in rows} == {'Leave-Approved'}
        assert rows[0].remarks == 'Approved leave: Sick - Flu'
    finally:
        session.close()

    titles = [n['title'] for n in teacher.get('/api/notifications/user').get_json()['notifications']]
    assert titles == ['Leave Request Approved']


def test_rejecting_leave(app, seed):
    teacher = client_for(app, 'teacher@school.com')
    leave_id = apply_for_leave(teacher, seed['school_id']).get_json()['leave']['id']

    principal = client_for(app, 'principal@school.com')
    assert principal.patch(f'/api/school-admin/leaves/{leave_id}', json={'action': 'maybe'}).status_code == 400

    response = principal.patch(f'/api/school-admin/leaves/{leave_id}', json={'action': 'reject'})
    assert response.status_code == 200
    assert response.get_json()['leave']['status'] == 'Rejected'

    session = get_session()
    try:
        assert session.query(Attendance).count() == 0
    finally:
        session.close()


def test_other_school_admin_cannot_review(app, seed):
    teacher = client_for(app, 'teacher@school.com')
    leave_id = apply_for_leave(teacher, seed['school_id']).get_json()['leave']['id']

    other = client_for(app, 'other.principal@school.com')
    response = other.patch(f'/api/school-admin/leaves/{leave_id}', json={'action': 'approve'})
    assert response.status_code == 404
    assert response.get_json()['error'] == 'Leave request not found'


def test_school_admin_attendance_view(app, seed):
    teacher = client_for(app, 'teacher@school.com')
    teacher.post('/api/teacher/attendance', json={'school_id': seed['school_id'], 'date': '2026-03-02'})

    principal = client_for(app, 'principal@school.com')
    records = principal.get('/api/school-admin/teacher-attendance').get_json()['attendance']
    assert [r['teacher_name'] for r in records] == ['Tara Teacher']

    other = client_for(app, 'other.principal@school.com')
    assert other.get('/api/school-admin/teacher-attendance').get_json()['attendance'] == []


def test_teacher_dashboard(app, seed):
    teacher = client_for(app, 'teacher@school.com')
    apply_for_leave(teacher, seed['school_id'])
    stats = teacher.get('/api/teacher/dashboard').get_json()['stats']
    assert stats['school_count'] == 1
    assert stats['pending_leaves'] == 1
    assert stats['student_count'] == 1


def test_teaching_reports(app, seed):
    teacher = client_for(app, 'teacher@school.com')
    missing = teacher.post('/api/teacher/reports', json={'school_id': seed['school_id'], 'report_date': '2026-03-02'})
    assert missing.status_code == 400

    created = teacher.post('/api/teacher/reports', json={
        'school_id': seed['school_id'], 'report_date': '2026-03-02', 'grade': 'Grade 5',
        'subject': 'Maths', 'topics_covered': 'Fractions',
    })
    assert created.status_code == 201

    principal = client_for(app, 'principal@school.com')
    reports = principal.get('/api/school-admin/reports').get_json()['reports']
    assert [r['teacher_name'] for r in reports] == ['Tara Teacher']
