import json
from datetime import datetime, timedelta

import pytest

from maturity_api.models.assessment import (
    AssessmentCode,
    AssessmentResponse,
    AssessmentSession,
    MaturityLevel,
    SessionScore,
)
from maturity_api.models.audit_log import AuditLog
from maturity_api.models.domain import Question

PARTICIPANT = {
    'name': 'Sara Ali',
    'email': 'sara@acme.example',
    'organization': 'Acme',
    'roleTitle': 'CDO',
}


@pytest.fixture
def open_code(db):
    code = AssessmentCode(
        code='ABCD1234',
        organization_name='Acme',
        assessment_type='full',
        expires_at=datetime.now() + timedelta(days=7),
        question_list=json.dumps(['Q1', 'Q2', 'Q3']),
    )
    db.add(code)
    db.commit()
    return code


def _start_session(client, user_data=None) -> dict:
    response = client.post('/api/session', json={'code': 'abcd1234', 'userData': user_data or PARTICIPANT})
    assert response.status_code == 200
    return response.json()


def _validation_audits(db) -> int:
    return db.query(AuditLog).filter(AuditLog.action == 'code_validation').count()


def test_validate_code_upper_cases_and_audits_once(client, db, open_code) -> None:
    response = client.post('/api/validate-code', json={'code': ' abcd1234 '})

    assert response.status_code == 200
    body = response.json()
    assert body['success'] is True
    assert body['valid'] is True
    assert body['is_completed'] is False
    assert body['has_user_data'] is False
    assert _validation_audits(db) == 1
    assert 'ABCD1234' in db.query(AuditLog).one().details


@pytest.mark.parametrize(
    ('code', 'status_code', 'error'),
    [
        ('', 400, 'Assessment code is required'),
        ('nope', 404, 'Invalid assessment code'),
    ],
)
def test_validate_code_failures_are_audited(client, db, code: str, status_code: int, error: str) -> None:
    response = client.post('/api/validate-code', json={'code': code})

    assert response.status_code == status_code
    assert response.json() == {'success': False, 'error': error, 'valid': False}
    assert _validation_audits(db) == 1


@pytest.mark.parametrize(
    ('request_kwargs', 'status_code', 'logged_code'),
    [
        ({'json': {'code': 12345678}}, 404, '12345678'),
        ({}, 400, '<empty>'),
        ({'json': ['ABCD1234']}, 400, '<empty>'),
        ({'content': b'not json', 'headers': {'Content-Type': 'application/json'}}, 400, '<empty>'),
    ],
)
def test_validate_code_audits_malformed_bodies(
    client, db, request_kwargs: dict, status_code: int, logged_code: str
) -> None:
    response = client.post('/api/validate-code', **request_kwargs)

    assert response.status_code == status_code
    assert response.json()['valid'] is False
    assert _validation_audits(db) == 1
    assert db.query(AuditLog).one().details.startswith(f'Code: {logged_code},')


def test_validate_code_rejects_expired_code(client, db) -> None:
    db.add(AssessmentCode(code='OLD12345', organization_name='Acme', expires_at=datetime.now() - timedelta(days=1)))
    db.commit()

    response = client.post('/api/validate-code', json={'code': 'old12345'})

    assert response.status_code == 400
    assert response.json()['error'] == 'Assessment code has expired'
    assert _validation_audits(db) == 1


def test_validate_code_reports_in_progress_session(client, db, open_code) -> None:
    _start_session(client)

    body = client.post('/api/validate-code', json={'code': 'ABCD1234'}).json()

    assert body['has_user_data'] is True
    assert body['is_completed'] is False
    assert body['existing_user']['email'] == 'sara@acme.example'


def test_session_unknown_code_returns_404(client) -> None:
    response = client.post('/api/session', json={'code': 'MISSING1', 'userData': PARTICIPANT})

    assert response.status_code == 404


def test_session_requires_user_data(client, open_code) -> None:
    response = client.post('/api/session', json={'code': 'ABCD1234'})

    assert response.status_code == 400


def test_session_created_for_new_participant(client, db, open_code) -> None:
    body = _start_session(client)

    assert body['is_resume'] is False
    assert body['session_id'].startswith('session_')
    assert body['user_id'].startswith('user_')
    assert body['saved_responses'] == {}
    assert body['start_question'] == 0
    assert body['completion_percentage'] == 0

    session = db.query(AssessmentSession).one()
    assert session.total_questions == 3
    assert db.query(AuditLog).filter(AuditLog.action == 'session_created').count() == 1


def test_session_resume_returns_saved_progress(client, db, open_code) -> None:
    first = _start_session(client)
    client.post('/api/save-responses', json={'sessionId': first['session_id'], 'responses': {'Q1': '3'}})

    resumed = _start_session(client, {**PARTICIPANT, 'roleTitle': 'Chief Data Officer'})

    assert resumed['is_resume'] is True
    assert resumed['session_id'] == first['session_id']
    assert resumed['saved_responses'] == {'Q1': '3'}
    assert resumed['start_question'] == 1
    assert resumed['completion_percentage'] == 33
    assert db.query(AssessmentSession).count() == 1
    assert db.query(AuditLog).filter(AuditLog.action == 'session_resumed').count() == 1


def test_session_conflict_for_different_person(client, open_code) -> None:
    _start_session(client)

    response = client.post(
        '/api/session',
        json={'code': 'ABCD1234', 'userData': {**PARTICIPANT, 'email': 'other@acme.example'}},
    )

    assert response.status_code == 409
    assert response.json()['code_already_used'] is True


def test_save_responses_scores_and_updates_progress(client, db, open_code) -> None:
    session_id = _start_session(client)['session_id']

    response = client.post(
        '/api/save-responses',
        json={'sessionId': session_id, 'responses': {'Q1': '4', 'Q2': 'na'}},
    )

    assert response.status_code == 200
    assert response.json()['completion_percentage'] == 67

    scores = {row.question_id: row.score_value for row in db.query(AssessmentResponse).all()}
    assert scores == {'Q1': 4, 'Q2': 0}
    assert {row.assessment_code for row in db.query(AssessmentResponse).all()} == {'ABCD1234'}


def test_save_responses_overwrites_previous_answer(client, db, open_code) -> None:
    session_id = _start_session(client)['session_id']

    client.post('/api/save-responses', json={'sessionId': session_id, 'responses': {'Q1': '2'}})
    client.post('/api/save-responses', json={'sessionId': session_id, 'responses': {'Q1': 'ns'}})

    row = db.query(AssessmentResponse).one()
    assert row.selected_option == 'ns'
    assert row.score_value == 0


def test_save_responses_rejects_non_numeric_value(client, db, open_code) -> None:
    session_id = _start_session(client)['session_id']

    response = client.post('/api/save-responses', json={'sessionId': session_id, 'responses': {'Q1': 'high'}})

    assert response.status_code == 400
    assert db.query(AssessmentResponse).count() == 0


def test_save_responses_unknown_session_returns_404(client) -> None:
    response = client.post('/api/save-responses', json={'sessionId': 'session_missing', 'responses': {'Q1': '1'}})

    assert response.status_code == 404


def test_complete_assessment_marks_code_and_session(client, db, open_code) -> None:
    session_id = _start_session(client)['session_id']

    response = client.post(
        '/api/complete-assessment',
        json={'code': 'abcd1234', 'sessionId': session_id, 'responses': {'Q1': '1', 'Q2': '2', 'Q3': '3'}},
    )

    assert response.status_code == 200
    db.expire_all()
    code = db.query(AssessmentCode).one()
    session = db.query(AssessmentSession).one()
    assert code.is_used is True
    assert code.usage_count == 1
    assert session.status == 'completed'
    assert session.completion_percentage == 100
    assert session.session_end is not None

    validation = client.post('/api/validate-code', json={'code': 'ABCD1234'}).json()
    assert validation['is_completed'] is True
    assert validation['session_id'] == session_id


def test_completed_session_rejects_further_answers(client, db, open_code) -> None:
    session_id = _start_session(client)['session_id']
    payload = {'code': 'ABCD1234', 'sessionId': session_id, 'responses': {'Q1': '1', 'Q2': '2', 'Q3': '3'}}
    assert client.post('/api/complete-assessment', json=payload).status_code == 200

    saved = client.post('/api/save-responses', json={'sessionId': session_id, 'responses': {'Q1': '5'}})
    repeated = client.post('/api/complete-assessment', json=payload)

    assert saved.status_code == 409
    assert repeated.status_code == 409
    assert repeated.json()['error'] == 'Assessment already completed'
    db.expire_all()
    assert db.query(AssessmentCode).one().usage_count == 1
    assert db.query(AssessmentSession).one().completion_percentage == 100
    first_answer = db.query(AssessmentResponse).filter(AssessmentResponse.question_id == 'Q1').one()
    assert first_answer.selected_option == '1'


def test_questions_by_code_reports_first_unanswered(client, open_code) -> None:
    session_id = _start_session(client)['session_id']
    client.post('/api/save-responses', json={'sessionId': session_id, 'responses': {'Q1': '1', 'Q3': '2'}})

    first = client.post('/api/questions-by-code', json={'code': 'abcd1234'}).json()
    remaining = client.get('/api/questions-by-code', params={'code': 'abcd1234'}).json()

    assert first['question_number'] == 1
    assert first['total_answered'] == 2
    assert first['completed'] is False
    assert remaining['unanswered_questions'] == ['Q2']


def test_questions_by_code_rejects_empty_question_list(client, db) -> None:
    db.add(AssessmentCode(code='EMPTY123', organization_name='Acme', question_list=''))
    db.commit()

    response = client.post('/api/questions-by-code', json={'code': 'EMPTY123'})

    assert response.status_code == 400
    assert response.json()['error'] == 'No questions found for this assessment code'


def test_maturity_levels_ordered_by_number(client, db) -> None:
    db.add_all([
        MaturityLevel(level_number=2, level_name='Developing'),
        MaturityLevel(level_number=1, level_name='Initial'),
    ])
    db.commit()

    levels = client.get('/api/maturity-levels').json()['levels']

    assert [level['level_name'] for level in levels] == ['Initial', 'Developing']


@pytest.fixture
def scored_questions(db, taxonomy):
    db.add_all([
        Question(id='Q1', subdomain_id=taxonomy['quality'].id, text_en='Is data profiled?'),
        Question(id='Q2', subdomain_id=taxonomy['quality'].id, text_en='Are issues tracked?'),
        Question(id='Q3', subdomain_id=taxonomy['reporting'].id, text_en='Are reports certified?'),
    ])
    db.commit()
    return taxonomy


def test_calculate_scores_per_subdomain_and_overall(client, db, open_code, scored_questions) -> None:
    session_id = _start_session(client)['session_id']
    client.post('/api/save-responses', json={'sessionId': session_id, 'responses': {'Q1': '2', 'Q2': '3', 'Q3': '4'}})

    response = client.post('/api/calculate-scores', json={'sessionId': session_id})

    assert response.status_code == 200
    body = response.json()
    assert body['overall_score']['raw_score'] == 3.0
    assert body['overall_score']['percentage_score'] == 60.0
    assert body['overall_score']['maturity_level'] == 'Defined'
    by_subdomain = {score['subdomain_id']: score for score in body['subdomain_scores']}
    quality = by_subdomain[scored_questions['quality'].id]
    assert (quality['raw_score'], quality['maturity_level'], quality['questions_answered']) == (2.5, 'Developing', 2)
    assert by_subdomain[scored_questions['reporting'].id]['maturity_level'] == 'Advanced'


def test_recalculating_scores_replaces_previous_rows(client, db, open_code, scored_questions) -> None:
    session_id = _start_session(client)['session_id']
    client.post('/api/save-responses', json={'sessionId': session_id, 'responses': {'Q1': '1', 'Q3': '1'}})
    client.post('/api/calculate-scores', json={'sessionId': session_id})
    client.post('/api/save-responses', json={'sessionId': session_id, 'responses': {'Q1': '5'}})

    body = client.post('/api/calculate-scores', json={'sessionId': session_id}).json()

    assert body['overall_score']['raw_score'] == 3.0
    assert db.query(SessionScore).filter(SessionScore.session_id == session_id).count() == 3


def test_calculate_scores_ignores_unscored_answers(client, db, open_code, scored_questions) -> None:
    session_id = _start_session(client)['session_id']
    client.post('/api/save-responses', json={'sessionId': session_id, 'responses': {'Q1': 'na', 'Q2': 'ns'}})

    response = client.post('/api/calculate-scores', json={'sessionId': session_id})
    missing = client.post('/api/calculate-scores', json={})
    unknown = client.post('/api/calculate-scores', json={'sessionId': 'session_missing'})

    assert response.status_code == 404
    assert response.json()['error'] == 'No valid responses found'
    assert missing.status_code == 400
    assert unknown.status_code == 404
    assert db.query(SessionScore).count() == 0


def test_complete_assessment_stores_scores(client, db, open_code, scored_questions) -> None:
    session_id = _start_session(client)['session_id']

    response = client.post(
        '/api/complete-assessment',
        json={'code': 'ABCD1234', 'sessionId': session_id, 'responses': {'Q1': '4', 'Q2': '5', 'Q3': 'ns'}},
    )

    assert response.json()['overall_score'] == 4.5
    overall = db.query(SessionScore).filter(SessionScore.score_type == 'overall').one()
    assert overall.maturity_level == 'Optimized'
    assert overall.percentage_score == 90.0


def test_results_list_every_subdomain_in_requested_language(client, db, open_code, scored_questions) -> None:
    scored_questions['quality'].name_ar = 'جودة البيانات'
    db.commit()
    session_id = _start_session(client)['session_id']
    client.post('/api/save-responses', json={'sessionId': session_id, 'responses': {'Q1': '4', 'Q2': '5'}})

    response = client.get('/api/results', params={'session': session_id, 'lang': 'ar'})

    assert response.status_code == 200
    body = response.json()
    assert body['participant']['name'] == 'Sara Ali'
    assert body['session']['status'] == 'in_progress'
    assert body['overall_score']['raw_score'] == 4.5
    assert [row['subdomain_name'] for row in body['subdomain_scores']] == ['جودة البيانات', 'Reporting']
    assert [row['assessed'] for row in body['subdomain_scores']] == [True, False]
    assert body['subdomain_scores'][1]['score'] is None
    assert db.query(SessionScore).filter(SessionScore.session_id == session_id).count() == 2


def test_results_require_known_session(client) -> None:
    assert client.get('/api/results').status_code == 400
    assert client.get('/api/results', params={'session': 'session_missing'}).json()['error'] == 'Session not found'
