from datetime import date, timedelta

import pytest

from maturity_api.models.hist_data import HistData


def _entry(**overrides) -> dict:
    entry = {
        'domainName': 'Data Governance',
        'subdomainName': 'Data Quality',
        'scopeName': 'Profiling',
        'hours': 2.5,
        'notes': 'Profiled customer tables',
    }
    entry.update(overrides)
    return entry


def _hist_row(consultant: str, day: date, hours: float = 1.0, client: str = 'Data Quality') -> HistData:
    return HistData(
        source='WEB_ENTRY',
        year=day.year,
        month_no=day.month,
        day=day.day,
        month=day.strftime('%B'),
        consultant=consultant,
        client=client,
        activity_type='Regular',
        working_hours=hours,
        domain='Data Governance',
        subdomain='Data Quality',
        scope='Profiling',
    )


@pytest.fixture
def consultant(create_user, assign_domain, taxonomy):
    user = create_user('jane')
    assign_domain(user, taxonomy['governance'])
    return user


def test_create_entries_requires_token(client, taxonomy) -> None:
    response = client.post('/api/entries', json={'entries': [_entry()]})

    assert response.status_code == 401


@pytest.mark.parametrize(
    'entries',
    [
        [],
        [_entry(hours=0.1)],
        [_entry(hours=25)],
        [_entry(notes='   ')],
        [_entry(scopeName='')],
    ],
)
def test_create_entries_rejects_invalid_body(client, consultant, auth_headers, entries) -> None:
    response = client.post('/api/entries', json={'entries': entries}, headers=auth_headers(consultant))

    assert response.status_code == 400
    assert response.json()['error'] == 'Invalid request data'


def test_create_entries_rejects_unassigned_domain(client, db, consultant, auth_headers) -> None:
    payload = {'entries': [_entry(domainName='Analytics', subdomainName='Reporting', scopeName='Dashboards')]}

    response = client.post('/api/entries', json=payload, headers=auth_headers(consultant))

    assert response.status_code == 403
    assert response.json()['allowed_domains'] == ['Data Governance']
    assert db.query(HistData).count() == 0


def test_create_entries_unknown_scope_writes_nothing(client, db, consultant, auth_headers) -> None:
    payload = {'entries': [_entry(), _entry(scopeName='Missing')]}

    response = client.post('/api/entries', json=payload, headers=auth_headers(consultant))

    assert response.status_code == 400
    assert response.json()['error'] == "Scope 'Missing' not found in subdomain 'Data Quality'"
    assert db.query(HistData).count() == 0


def test_create_entries_stores_one_row_per_entry(client, db, consultant, auth_headers) -> None:
    payload = {'entries': [_entry(), _entry(hours=1, notes='Follow-up')]}

    response = client.post('/api/entries', json=payload, headers=auth_headers(consultant))

    assert response.status_code == 201
    assert response.json()['message'] == 'Successfully created 2 entries'

    rows = db.query(HistData).order_by(HistData.id).all()
    today = date.today()
    assert len(rows) == 2
    assert {row.source for row in rows} == {'WEB_ENTRY'}
    assert {row.activity_type for row in rows} == {'Regular'}
    assert rows[0].client == 'Data Quality'
    assert rows[0].consultant == 'jane'
    assert (rows[0].year, rows[0].month_no, rows[0].day) == (today.year, today.month, today.day)
    assert rows[0].working_hours == 2.5


def test_today_returns_only_callers_entries_for_today(client, db, consultant, auth_headers) -> None:
    today = date.today()
    db.add_all([
        _hist_row('jane', today, hours=3),
        _hist_row('jane', today - timedelta(days=1), hours=4),
        _hist_row('someone-else', today, hours=5),
    ])
    db.commit()

    response = client.get('/api/dashboard/today', headers=auth_headers(consultant))

    assert response.status_code == 200
    entries = response.json()['entries']
    assert [entry['hours'] for entry in entries] == [3.0]


def test_activity_lists_recent_entries(client, db, consultant, auth_headers) -> None:
    db.add(_hist_row('jane', date.today(), hours=1.5))
    db.commit()

    activities = client.get('/api/dashboard/activity', headers=auth_headers(consultant)).json()['activities']

    assert len(activities) == 1
    assert activities[0]['type'] == 'entry_added'
    assert activities[0]['description'] == 'Added 1.5h entry for Data Quality - Data Governance'


def test_stats_summarise_month(client, db, consultant, auth_headers) -> None:
    today = date.today()
    db.add_all([
        _hist_row('jane', today, hours=6),
        _hist_row('jane', today, hours=2, client='Reporting'),
        _hist_row('someone-else', today, hours=8),
    ])
    db.commit()

    stats = client.get('/api/dashboard/stats', headers=auth_headers(consultant)).json()['stats']

    assert stats['today_hours'] == 8.0
    assert stats['month_hours'] == 8.0
    assert stats['active_clients'] == 2
    assert stats['expected_monthly_hours'] == 132.0
    assert stats['utilization'] == round(8 / 132 * 100, 1)


def _saved_row(db, consultant: str) -> HistData:
    row = _hist_row(consultant, date.today())
    db.add(row)
    db.commit()
    return row


def test_update_entry_changes_hours_and_notes(client, db, consultant, auth_headers) -> None:
    row = _saved_row(db, 'jane')

    response = client.put(
        f'/api/entries/{row.id}',
        json={'hours': 4, 'notes': ' Reviewed profiling rules '},
        headers=auth_headers(consultant),
    )

    assert response.status_code == 200
    assert response.json()['entry']['hours'] == 4.0
    assert response.json()['entry']['notes'] == 'Reviewed profiling rules'
    db.refresh(row)
    assert row.working_hours == 4.0
    assert row.scope == 'Profiling'


@pytest.mark.parametrize(
    ('payload', 'status_code'),
    [
        ({}, 400),
        ({'hours': 30}, 400),
        ({'scopeName': 'Dashboards'}, 400),
        ({'domainName': 'Analytics', 'subdomainName': 'Reporting', 'scopeName': 'Dashboards'}, 403),
    ],
)
def test_update_entry_validates_changes(client, db, consultant, auth_headers, payload: dict, status_code: int) -> None:
    row = _saved_row(db, 'jane')

    response = client.put(f'/api/entries/{row.id}', json=payload, headers=auth_headers(consultant))

    assert response.status_code == status_code
    db.refresh(row)
    assert (row.domain, row.scope, row.working_hours) == ('Data Governance', 'Profiling', 1.0)


def test_admin_can_move_entry_to_other_subdomain(client, db, consultant, create_user, auth_headers) -> None:
    row = _saved_row(db, 'jane')
    admin = create_user('boss', role='admin')

    response = client.put(
        f'/api/entries/{row.id}',
        json={'domainName': 'Analytics', 'subdomainName': 'Reporting', 'scopeName': 'Dashboards'},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    db.refresh(row)
    assert (row.domain, row.client, row.scope, row.consultant) == ('Analytics', 'Reporting', 'Dashboards', 'jane')


def test_entries_of_other_consultants_are_protected(client, db, consultant, auth_headers) -> None:
    row = _saved_row(db, 'mark')

    updated = client.put(f'/api/entries/{row.id}', json={'hours': 3}, headers=auth_headers(consultant))
    deleted = client.delete(f'/api/entries/{row.id}', headers=auth_headers(consultant))

    assert updated.status_code == 403
    assert deleted.json()['error'] == 'Access denied to this entry'
    assert db.query(HistData).count() == 1


def test_delete_entry_removes_row(client, db, consultant, auth_headers) -> None:
    row = _saved_row(db, 'jane')
    row_id = row.id

    fetched = client.get(f'/api/entries/{row_id}', headers=auth_headers(consultant))
    first = client.delete(f'/api/entries/{row_id}', headers=auth_headers(consultant))
    second = client.delete(f'/api/entries/{row_id}', headers=auth_headers(consultant))

    assert fetched.json()['entry']['scope'] == 'Profiling'
    assert first.json()['deleted_id'] == row_id
    assert second.status_code == 404
    assert db.query(HistData).count() == 0
