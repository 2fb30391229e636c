from datetime import date, datetime

from maturity_api.models.assessment import AssessmentResponse, AssessmentSession, Participant
from maturity_api.models.user import ROLE_ADMIN


def _seed_sessions(db) -> None:
    db.add_all([
        Participant(id='user_1', name='Sara', organization='Acme'),
        Participant(id='user_2', name='Omar', organization='Globex'),
        AssessmentSession(id='session_1', participant_id='user_1', code='AAA', status='completed'),
        AssessmentSession(id='session_2', participant_id='user_2', code='BBB', status='in_progress'),
        AssessmentResponse(session_id='session_1', question_id='Q1', selected_option='4', score_value=4),
        AssessmentResponse(session_id='session_1', question_id='Q2', selected_option='2', score_value=2),
    ])
    db.commit()


def test_overview_summarises_sessions(client, db, create_user, auth_headers) -> None:
    _seed_sessions(db)
    headers = auth_headers(create_user('boss', role=ROLE_ADMIN))

    data = client.get('/api/admin/analytics/overview', headers=headers).json()['data']

    assert data == {
        'total_assessments': 1,
        'total_organizations': 1,
        'avg_maturity_score': 3.0,
        'completion_rate': 50.0,
    }


def test_overview_rejects_inverted_range(client, create_user, auth_headers) -> None:
    headers = auth_headers(create_user('boss', role=ROLE_ADMIN))

    response = client.get(
        '/api/admin/analytics/overview',
        params={'start': '2026-02-01', 'end': '2026-01-01'},
        headers=headers,
    )

    assert response.status_code == 400


def test_page_visits_groups_audit_log(client, create_user, auth_headers) -> None:
    headers = auth_headers(create_user('boss', role=ROLE_ADMIN))
    for page in ('/', '/', '/assessment'):
        client.post('/api/track-visit', json={'page': page}, headers={'X-Forwarded-For': '203.0.113.7'})

    data = client.get('/api/admin/analytics/page-visits', params={'days': 7}, headers=headers).json()['data']

    assert data['period'] == 'Last 7 days'
    assert data['popular_pages'][0] == {'page': '/', 'visits': 2}
    assert data['visit_stats'][0]['visit_date'] == date.today().isoformat()
    assert data['visit_stats'][0]['visits'] == 3
    assert data['visit_stats'][0]['unique_visitors'] == 1
    assert data['summary']['total_visits'] == 3


def test_overview_applies_single_bound(client, db, create_user, auth_headers) -> None:
    _seed_sessions(db)
    db.add_all([
        Participant(id='user_3', name='Lina', organization='Initech'),
        AssessmentSession(
            id='session_3',
            participant_id='user_3',
            code='CCC',
            status='completed',
            session_start=datetime(2020, 1, 15, 9, 0),
        ),
    ])
    db.commit()
    headers = auth_headers(create_user('boss', role=ROLE_ADMIN))

    recent = client.get('/api/admin/analytics/overview', params={'start': '2021-01-01'}, headers=headers)
    older = client.get('/api/admin/analytics/overview', params={'end': '2020-12-31'}, headers=headers)

    assert recent.json()['data']['total_assessments'] == 1
    assert recent.json()['data']['completion_rate'] == 50.0
    assert older.json()['data']['total_assessments'] == 1
    assert older.json()['data']['total_organizations'] == 1
    assert older.json()['data']['completion_rate'] == 100.0
