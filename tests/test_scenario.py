"""A full patient journey across every resource."""

from conftest import register


def test_patient_journey(api_client):
    headers = register(api_client, existing_conditions='Hypertension')

    provider = api_client.post(
        '/providers',
        json={'provider_name': 'Dr. Lee', 'provider_type': 'personal_doctor', 'phone': '555-0199'},
        headers=headers,
    ).json()
    provider_id = provider['id']

    symptom_id = api_client.post(
        '/symptoms',
        json={'symptom_name': 'Dizziness', 'severity': 4, 'onset_date': '2024-05-02', 'triggers': 'Standing up'},
        headers=headers,
    ).json()['id']

    visit_id = api_client.post(
        '/visits',
        json={'provider_id': provider_id, 'visit_date': '2030-06-10', 'visit_reason': 'Dizziness review'},
        headers=headers,
    ).json()['id']

    api_client.post(
        '/medications',
        json={
            'medication_name': 'Amlodipine',
            'dosage': '5mg',
            'frequency': 'Daily',
            'conditions_or_symptoms': 'Hypertension',
            'prescribing_provider_id': provider_id,
        },
        headers=headers,
    )

    conditions = api_client.get('/visit-prep/conditions', headers=headers).json()
    assert conditions == {'has_conditions': True, 'conditions': ['Hypertension']}

    questions = api_client.post(f'/anthropic/generate-visit-questions/{visit_id}', headers=headers).json()
    assert questions['metadata']['dataIncluded'] == {'symptoms': 1, 'medications': 1, 'hasProvider': True}

    resp = api_client.post(
        '/visit-prep',
        json={
            'visit_id': visit_id,
            'questions_to_ask': '\n'.join(questions['questions']),
            'prep_summary_notes': 'Ask about dizziness',
        },
        headers=headers,
    )
    assert resp.status_code == 201

    upcoming = api_client.get('/visits/upcoming', headers=headers).json()
    assert [v['id'] for v in upcoming] == [visit_id]

    assert api_client.put(f'/visits/{visit_id}', json={'status': 'completed'}, headers=headers).status_code == 200
    assert api_client.get('/visits/upcoming', headers=headers).json() == []

    resp = api_client.post(
        '/visit-summaries',
        json={'visit_id': visit_id, 'doctor_recommendations': 'Hydrate', 'visit_summary_notes': 'Likely orthostatic'},
        headers=headers,
    )
    assert resp.status_code == 201

    api_client.put(f'/symptoms/{symptom_id}', json={'status': 'resolved', 'end_date': '2030-06-20'}, headers=headers)
    assert api_client.get('/symptoms/active', headers=headers).json() == []
    assert [s['id'] for s in api_client.get('/symptoms/resolved', headers=headers).json()] == [symptom_id]

    completed = api_client.get('/visits/completed', headers=headers).json()
    assert completed[0]['provider_name'] == 'Dr. Lee'
