"""Health, metrics, tracing and the error envelope."""

from healthrecord import providers


def test_health_reports_database(api_client):
    resp = api_client.get('/health')
    assert resp.status_code == 200
    body = resp.json()
    assert body['status'] == 'ok'
    assert body['db'] is True
    assert body['uptime'] >= 0


def test_trace_id_is_propagated(api_client):
    resp = api_client.get('/health', headers={'X-Trace-Id': 'abc123'})
    assert resp.headers['x-trace-id'] == 'abc123'

    resp = api_client.get('/health')
    assert resp.headers['x-trace-id']


def test_metrics_exposes_request_counters(api_client, auth_headers):
    api_client.get('/providers/42', headers=auth_headers)
    resp = api_client.get('/metrics')
    assert resp.status_code == 200
    text = resp.text
    assert 'healthrecord_requests_total' in text
    assert 'endpoint="/providers/:param"' in text


def test_unknown_route_uses_error_envelope(api_client):
    resp = api_client.get('/no-such-route')
    assert resp.status_code == 404
    body = resp.json()
    assert body['success'] is False
    assert body['error']['message'] == 'Not Found'


def test_unexpected_errors_are_generic(api_client, auth_headers, monkeypatch):
    def boom(session, user_id):
        raise RuntimeError('database on fire')

    monkeypatch.setattr(providers, 'list_providers', boom)
    resp = api_client.get('/providers', headers=auth_headers)
    assert resp.status_code == 500
    assert resp.json() == {'success': False, 'error': {'code': 500, 'message': 'Internal server error'}}


def test_malformed_json_is_bad_request(api_client, auth_headers):
    resp = api_client.post(
        '/providers',
        content='{not json',
        headers={**auth_headers, 'Content-Type': 'application/json'},
    )
    assert resp.status_code == 400
    assert resp.json()['success'] is False
