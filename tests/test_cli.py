from db_single import get_session
from models import User, School, JoinCode


def test_add_and_list_schools(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['add-school', '--name', 'Hill Top Academy', '--city', 'Shimla', '--grades', '1, 2,kg'])
    assert '✅' in result.output

    duplicate = runner.invoke(args=['add-school', '--name', 'Hill Top Academy'])
    assert 'already exists' in duplicate.output

    listing = runner.invoke(args=['list-schools'])
    assert 'Hill Top Academy' in listing.output
    assert 'Grade 1, Grade 2, Kindergarten' in listing.output


def test_create_admin(app):
    runner = app.test_cli_runner()

    weak = runner.invoke(args=['create-admin', '--email', 'ops@school.com', '--password', 'weak'])
    assert '❌' in weak.output

    result = runner.invoke(args=['create-admin', '--email', 'Ops@School.com', '--password', 'Password1', '--super'])
    assert 'super_admin created: ops@school.com' in result.output

    session = get_session()
    try:
        assert session.query(User).filter_by(email='ops@school.com').one().role == 'super_admin'
    finally:
        session.close()


def test_generate_join_codes(app):
    runner = app.test_cli_runner()
    runner.invoke(args=['add-school', '--name', 'Lake School'])

    session = get_session()
    try:
        school_id = session.query(School.id).filter_by(name='Lake School').scalar()
    finally:
        session.close()

    result = runner.invoke(args=['generate-join-codes', '--school-id', school_id, '--grades', '3,4', '--single-use'])
    assert 'Grade 3: LS-G3-' in result.output

    session = get_session()
    try:
        codes = session.query(JoinCode).filter_by(school_id=school_id).all()
        assert {c.usage_type for c in codes} == {'single'}
        assert {c.max_uses for c in codes} == {1}
    finally:
        session.close()


def test_setup_db_is_idempotent(app):
    result = app.test_cli_runner().invoke(args=['setup-db'])
    assert 'Database setup completed successfully' in result.output
