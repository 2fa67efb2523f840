from pagination_helpers import parse_pagination_params, parse_cursor_limit, pagination_meta


def test_limit_is_clamped(app):
    with app.test_request_context('/?limit=0'):
        assert parse_pagination_params() == (1, 0)
        assert parse_cursor_limit() == 1

    with app.test_request_context('/?limit=-5&offset=-3'):
        assert parse_pagination_params() == (1, 0)

    with app.test_request_context('/?limit=5000&offset=20'):
        assert parse_pagination_params() == (1000, 20)
        assert parse_cursor_limit() == 100


def test_missing_or_unparseable_limit_uses_default(app):
    with app.test_request_context('/'):
        assert parse_pagination_params() == (50, 0)
    with app.test_request_context('/?limit=abc'):
        assert parse_pagination_params() == (50, 0)
        assert parse_cursor_limit() == 50


def test_limit_zero_on_course_listing(admin_client, seed):
    response = admin_client.get('/api/admin/courses?limit=0')
    assert response.status_code == 200
    assert response.get_json()['pagination']['limit'] == 1


def test_pagination_meta():
    assert pagination_meta(120, 50, 50)['hasMore'] is True
    assert pagination_meta(100, 50, 50)['hasMore'] is False
