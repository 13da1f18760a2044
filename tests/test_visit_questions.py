from types import SimpleNamespace

import anthropic
import httpx
import pytest
from prometheus_client import REGISTRY

from conftest import create_provider, create_visit
from healthrecord import anthropic_client
from healthrecord.anthropic_client import call_anthropic
from healthrecord.errors import AIResponseParseError
from healthrecord.prompts import VisitContext, build_visit_questions_prompt
from healthrecord.visit_questions import parse_questions

_REQUEST = httpx.Request('POST', 'https://api.anthropic.com/v1/messages')


def _text_reply(text):
    return SimpleNamespace(
        content=[SimpleNamespace(type='thinking', thinking='...'), SimpleNamespace(type='text', text=text)]
    )


def _fake_sdk(monkeypatch, reply=None, error=None):
    """Swap the SDK client for one that records its arguments."""

    calls = {}

    class FakeMessages:
        def create(self, **kwargs):
            calls['create'] = kwargs
            if error is not None:
                raise error
            return reply

    class FakeClient:
        def __init__(self, **kwargs):
            calls['client'] = kwargs
            self.messages = FakeMessages()

    monkeypatch.setattr(anthropic_client.anthropic, 'Anthropic', FakeClient)
    return calls


@pytest.fixture
def online(monkeypatch):
    monkeypatch.delenv('USE_OFFLINE_MODEL', raising=False)
    monkeypatch.setenv('ANTHROPIC_API_KEY', 'test-key')
    return monkeypatch


def _sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_parse_questions_fenced_and_bare():
    assert parse_questions('```json\n["A?", "B?"]\n```') == ['A?', 'B?']
    assert parse_questions('Sure!\n```\n["C?"]\n```') == ['C?']
    assert parse_questions(' ["D?"] ') == ['D?']


@pytest.mark.parametrize('raw', ['not json at all', '{"questions": ["A?"]}', '[1, 2]'])
def test_parse_questions_rejects_non_arrays(raw):
    with pytest.raises(AIResponseParseError) as excinfo:
        parse_questions(raw)
    assert 'Failed to parse AI response as JSON' in excinfo.value.message


def test_prompt_falls_back_when_data_missing():
    prompt = build_visit_questions_prompt(VisitContext(visit_date='2030-05-01', visit_reason='Checkup'))
    assert 'Date: 2030-05-01 at Not specified' in prompt
    assert 'Provider information not available' in prompt
    assert prompt.count('None logged') == 2


def test_call_anthropic_uses_sdk(online):
    online.delenv('ANTHROPIC_MODEL', raising=False)
    calls = _fake_sdk(online, reply=_text_reply('["Q1?"]'))

    text = call_anthropic([{'role': 'user', 'content': 'hello'}], timeout=5)
    assert text == '["Q1?"]'
    assert calls['client'] == {'api_key': 'test-key', 'timeout': 5, 'max_retries': 0}
    create = calls['create']
    assert create['model'] == 'claude-sonnet-4-5'
    assert create['messages'] == [{'role': 'user', 'content': 'hello'}]
    assert create['max_tokens'] == 5000
    assert create['temperature'] == 1.0
    assert create['thinking'] == {'type': 'enabled', 'budget_tokens': 3500}


def test_call_anthropic_failures_become_runtime_errors(online):
    _fake_sdk(online, error=anthropic.APITimeoutError(request=_REQUEST))
    with pytest.raises(RuntimeError, match='timed out'):
        call_anthropic([{'role': 'user', 'content': 'hello'}])

    _fake_sdk(online, error=anthropic.APIConnectionError(request=_REQUEST))
    with pytest.raises(RuntimeError, match='Error calling Anthropic'):
        call_anthropic([{'role': 'user', 'content': 'hello'}])

    _fake_sdk(online, reply=SimpleNamespace(content=[SimpleNamespace(type='thinking', thinking='...')]))
    with pytest.raises(RuntimeError, match='No text response from AI'):
        call_anthropic([{'role': 'user', 'content': 'hello'}])

    online.delenv('ANTHROPIC_API_KEY')
    with pytest.raises(RuntimeError, match='ANTHROPIC_API_KEY'):
        call_anthropic([{'role': 'user', 'content': 'hello'}])


def test_generate_endpoint_offline(api_client, auth_headers):
    provider_id = create_provider(api_client, auth_headers)
    visit_id = create_visit(api_client, auth_headers, provider_id)
    api_client.post(
        '/symptoms',
        json={'symptom_name': 'Headache', 'severity': 6, 'onset_date': '2024-03-01'},
        headers=auth_headers,
    )

    resp = api_client.post(f'/anthropic/generate-visit-questions/{visit_id}', headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body['success'] is True
    assert len(body['questions']) == 3
    assert body['metadata'] == {
        'questionsGenerated': 3,
        'dataIncluded': {'symptoms': 1, 'medications': 0, 'hasProvider': True},
    }


def test_context_includes_discontinued_medications(api_client, auth_headers, online):
    provider_id = create_provider(api_client, auth_headers)
    visit_id = create_visit(api_client, auth_headers, provider_id)
    base = {'dosage': '5mg', 'frequency': 'Daily', 'conditions_or_symptoms': 'Pain'}
    api_client.post('/medications', json={**base, 'medication_name': 'Naproxen'}, headers=auth_headers)
    api_client.post(
        '/medications',
        json={**base, 'medication_name': 'Ibuprofen', 'status': 'discontinued'},
        headers=auth_headers,
    )
    removed = api_client.post(
        '/medications', json={**base, 'medication_name': 'Aspirin'}, headers=auth_headers
    ).json()['id']
    api_client.delete(f'/medications/{removed}', headers=auth_headers)
    calls = _fake_sdk(online, reply=_text_reply('["Should I restart ibuprofen?"]'))

    resp = api_client.post(f'/anthropic/generate-visit-questions/{visit_id}', headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()['metadata']['dataIncluded']['medications'] == 2

    prompt = calls['create']['messages'][0]['content']
    assert 'Ibuprofen 5mg, Daily (status: discontinued)' in prompt
    assert 'Naproxen' in prompt
    assert 'Aspirin' not in prompt


def test_generate_endpoint_reports_upstream_failures(api_client, auth_headers, online):
    provider_id = create_provider(api_client, auth_headers)
    visit_id = create_visit(api_client, auth_headers, provider_id)

    _fake_sdk(online, reply=_text_reply('I cannot help with that'))
    resp = api_client.post(f'/anthropic/generate-visit-questions/{visit_id}', headers=auth_headers)
    assert resp.status_code == 502
    assert resp.json()['error']['message'].startswith('Failed to parse AI response as JSON')

    _fake_sdk(online, error=anthropic.APIConnectionError(request=_REQUEST))
    resp = api_client.post(f'/anthropic/generate-visit-questions/{visit_id}', headers=auth_headers)
    assert resp.status_code == 502
    assert resp.json()['error']['message'].startswith('AI generation failed')


def test_unparseable_reply_counted_once(api_client, auth_headers, online):
    provider_id = create_provider(api_client, auth_headers)
    visit_id = create_visit(api_client, auth_headers, provider_id)
    _fake_sdk(online, reply=_text_reply('not a list'))
    calls_before = _sample('healthrecord_ai_requests_total', {'outcome': 'success'})
    parse_before = _sample('healthrecord_ai_parse_failures_total')

    resp = api_client.post(f'/anthropic/generate-visit-questions/{visit_id}', headers=auth_headers)
    assert resp.status_code == 502

    assert _sample('healthrecord_ai_requests_total', {'outcome': 'success'}) == calls_before + 1
    assert _sample('healthrecord_ai_parse_failures_total') == parse_before + 1
    assert _sample('healthrecord_ai_requests_total', {'outcome': 'parse_failure'}) == 0.0


def test_generate_endpoint_unknown_visit(api_client, auth_headers, other_headers):
    provider_id = create_provider(api_client, other_headers)
    visit_id = create_visit(api_client, other_headers, provider_id)
    resp = api_client.post(f'/anthropic/generate-visit-questions/{visit_id}', headers=auth_headers)
    assert resp.status_code == 404
