import pytest

from maturity_api.models.audit_log import AuditLog
from maturity_api.models.organization_request import OrganizationRequest

REQUEST = {
    'type': 'dma',
    'organizationName': 'Acme',
    'contactName': 'Sara Ali',
    'contactEmail': 'sara@acme.example',
    'industry': 'Retail',
}


def test_track_visit_records_page_view_with_forwarded_ip(client, db) -> None:
    response = client.post(
        '/api/track-visit',
        json={'page': '/assessment', 'sessionId': 'session_1'},
        headers={'X-Forwarded-For': '203.0.113.7, 10.0.0.1'},
    )

    assert response.status_code == 200
    log = db.query(AuditLog).one()
    assert log.action == 'page_view'
    assert log.user_type == 'visitor'
    assert log.user_id == 'session_1'
    assert log.details == '/assessment'
    assert log.ip_address == '203.0.113.7'


def test_track_visit_falls_back_to_real_ip_header(client, db) -> None:
    client.post('/api/track-visit', json={'page': '/'}, headers={'X-Real-IP': '198.51.100.2'})

    assert db.query(AuditLog).one().ip_address == '198.51.100.2'


def test_track_visit_requires_page(client, db) -> None:
    response = client.post('/api/track-visit', json={})

    assert response.status_code == 400
    assert db.query(AuditLog).count() == 0


def test_org_request_created(client, db) -> None:
    response = client.post('/api/org-requests', json=REQUEST)

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    stored = db.query(OrganizationRequest).one()
    assert stored.id == body['request_id']
    assert stored.status == 'pending'
    assert stored.contact_phone is None


def test_org_request_duplicates_are_kept(client, db) -> None:
    client.post('/api/org-requests', json=REQUEST)
    client.post('/api/org-requests', json=REQUEST)

    assert db.query(OrganizationRequest).count() == 2


@pytest.mark.parametrize(
    ('overrides', 'error'),
    [
        ({'type': 'other'}, 'Invalid request type. Must be "dma" or "consultation"'),
        ({'contactName': ''}, 'Contact name and email are required'),
        ({'organizationName': '  '}, 'Organization name is required'),
        ({'contactEmail': 'not-an-email'}, 'Invalid email format'),
    ],
)
def test_org_request_validation(client, db, overrides: dict, error: str) -> None:
    response = client.post('/api/org-requests', json={**REQUEST, **overrides})

    assert response.status_code == 400
    assert response.json()['error'] == error
    assert db.query(OrganizationRequest).count() == 0
