from conftest import complete_visit, create_provider, create_visit


def test_schedule_and_detail(api_client, auth_headers):
    provider_id = create_provider(api_client, auth_headers, phone='555-0123', office_address='1 Main St')
    resp = api_client.post(
        '/visits',
        json={
            'provider_id': provider_id,
            'visit_date': '2030-05-01',
            'visit_time': '14:15:00',
            'visit_reason': 'Follow-up',
            'status': 'completed',
        },
        headers=auth_headers,
    )
    assert resp.status_code == 201
    visit_id = resp.json()['id']

    detail = api_client.get(f'/visits/{visit_id}', headers=auth_headers).json()
    assert detail['status'] == 'scheduled'
    assert detail['visit_date'] == '2030-05-01'
    assert detail['visit_time'] == '14:15:00'
    assert detail['provider_name'] == 'Dr. Smith'
    assert detail['phone'] == '555-0123'
    assert detail['office_address'] == '1 Main St'


def test_bad_visit_time_format(api_client, auth_headers):
    provider_id = create_provider(api_client, auth_headers)
    resp = api_client.post(
        '/visits',
        json={'provider_id': provider_id, 'visit_date': '2030-05-01', 'visit_time': '9am', 'visit_reason': 'x'},
        headers=auth_headers,
    )
    assert resp.status_code == 400
    assert resp.json()['error']['details'][0]['message'] == 'Visit time must be in HH:MM:SS format'


def test_schedule_with_foreign_provider_rejected(api_client, auth_headers, other_headers):
    foreign = create_provider(api_client, other_headers)
    resp = api_client.post(
        '/visits',
        json={'provider_id': foreign, 'visit_date': '2030-05-01', 'visit_reason': 'x'},
        headers=auth_headers,
    )
    assert resp.status_code == 404


def test_upcoming_and_completed_lists(api_client, auth_headers):
    provider_id = create_provider(api_client, auth_headers)
    later = create_visit(api_client, auth_headers, provider_id, visit_date='2030-06-01')
    sooner = create_visit(api_client, auth_headers, provider_id, visit_date='2030-05-01')
    done = create_visit(api_client, auth_headers, provider_id, visit_date='2024-01-15')
    complete_visit(api_client, auth_headers, done)

    everything = api_client.get('/visits', headers=auth_headers).json()
    assert [v['id'] for v in everything] == [later, sooner, done]
    assert everything[0]['status'] == 'scheduled'

    upcoming = api_client.get('/visits/upcoming', headers=auth_headers).json()
    assert [v['id'] for v in upcoming] == [sooner, later]
    assert 'status' not in upcoming[0]

    completed = api_client.get('/visits/completed', headers=auth_headers).json()
    assert [v['id'] for v in completed] == [done]


def test_completed_visit_cannot_revert(api_client, auth_headers):
    provider_id = create_provider(api_client, auth_headers)
    visit_id = create_visit(api_client, auth_headers, provider_id)
    complete_visit(api_client, auth_headers, visit_id)

    resp = api_client.put(f'/visits/{visit_id}', json={'status': 'scheduled'}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()['error']['message'] == 'Cannot change a completed visit back to scheduled'

    resp = api_client.put(f'/visits/{visit_id}', json={'visit_reason': 'Corrected reason'}, headers=auth_headers)
    assert resp.status_code == 200
    detail = api_client.get(f'/visits/{visit_id}', headers=auth_headers).json()
    assert detail['visit_reason'] == 'Corrected reason'
    assert detail['status'] == 'completed'


def test_deleted_provider_hides_visits(api_client, auth_headers):
    provider_id = create_provider(api_client, auth_headers)
    visit_id = create_visit(api_client, auth_headers, provider_id)

    api_client.delete(f'/providers/{provider_id}', headers=auth_headers)

    assert api_client.get('/visits', headers=auth_headers).json() == []
    assert api_client.get('/visits/upcoming', headers=auth_headers).json() == []
    resp = api_client.get(f'/visits/{visit_id}', headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json()['error']['message'] == 'Provider for this visit is no longer available'


def test_delete_visit(api_client, auth_headers, other_headers):
    provider_id = create_provider(api_client, auth_headers)
    visit_id = create_visit(api_client, auth_headers, provider_id)

    assert api_client.delete(f'/visits/{visit_id}', headers=other_headers).status_code == 404
    resp = api_client.delete(f'/visits/{visit_id}', headers=auth_headers)
    assert resp.json() == {'success': True, 'message': 'Visit removed successfully'}
    assert api_client.get(f'/visits/{visit_id}', headers=auth_headers).status_code == 404
