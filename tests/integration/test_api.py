"""
Integration tests for the JSON API: tenant header handling, error mapping,
booking endpoints and the super-admin endpoints.
"""

import pytest

from conftest import DAY, at

ADMIN = {'X-Admin-Token': 'test-admin-token'}


def tenant_headers(salon):
    return {'X-Tenant-ID': str(salon.id)}


@pytest.fixture
def payload(staff, customer):
    return {
        'staff_id': staff.id,
        'customer_id': customer.id,
        'scheduled_at': at(10, 0).isoformat(),
        'duration_minutes': 30,
    }


class TestTenantHeader:

    def test_missing_header(self, client):
        response = client.get('/api/appointments')

        assert response.status_code == 400
        assert response.get_json() == {'status': 'error', 'message': 'X-Tenant-ID header is required'}

    def test_unknown_tenant(self, client):
        response = client.get('/api/appointments', headers={'X-Tenant-ID': '999999'})

        assert response.status_code == 404

    def test_non_numeric_header(self, client):
        response = client.get('/api/appointments', headers={'X-Tenant-ID': 'abc'})

        assert response.status_code == 400


class TestAppointmentsApi:

    def test_book_and_fetch(self, client, salon, payload):
        response = client.post('/api/appointments', json=payload, headers=tenant_headers(salon))

        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['status'] == 'booked'
        assert data['ends_at'] == at(10, 30).isoformat()

        fetched = client.get(f"/api/appointments/{data['id']}", headers=tenant_headers(salon))
        assert fetched.status_code == 200
        assert fetched.get_json()['data']['id'] == data['id']

    def test_conflict_returns_409_with_ids(self, client, salon, payload):
        first = client.post('/api/appointments', json=payload, headers=tenant_headers(salon)).get_json()['data']

        response = client.post('/api/appointments', json=dict(payload, scheduled_at=at(10, 15).isoformat()),
                               headers=tenant_headers(salon))

        assert response.status_code == 409
        body = response.get_json()
        assert body['status'] == 'error'
        assert body['conflicting_appointment_ids'] == [first['id']]

    def test_validation_error_is_422(self, client, salon, payload):
        payload.pop('scheduled_at')

        response = client.post('/api/appointments', json=payload, headers=tenant_headers(salon))

        assert response.status_code == 422

    def test_non_numeric_staff_id_is_422(self, client, salon, payload):
        payload['staff_id'] = 'abc'

        response = client.post('/api/appointments', json=payload, headers=tenant_headers(salon))

        assert response.status_code == 422

    def test_body_must_be_json_object(self, client, salon):
        response = client.post('/api/appointments', data='nope', headers=tenant_headers(salon))

        assert response.status_code == 422

    def test_other_tenant_cannot_read(self, client, salon, other_salon, payload):
        created = client.post('/api/appointments', json=payload, headers=tenant_headers(salon)).get_json()['data']

        response = client.get(f"/api/appointments/{created['id']}", headers=tenant_headers(other_salon))

        assert response.status_code == 404

    def test_list(self, client, salon, payload):
        client.post('/api/appointments', json=payload, headers=tenant_headers(salon))

        response = client.get(f'/api/appointments?date_from={DAY.isoformat()}&per_page=5',
                              headers=tenant_headers(salon))

        body = response.get_json()
        assert len(body['data']) == 1
        assert body['meta']['per_page'] == 5

    def test_reschedule_and_status(self, client, salon, payload):
        created = client.post('/api/appointments', json=payload, headers=tenant_headers(salon)).get_json()['data']

        moved = client.post(f"/api/appointments/{created['id']}/reschedule",
                            json={'scheduled_at': at(15, 0).isoformat()}, headers=tenant_headers(salon))
        assert moved.status_code == 200
        assert moved.get_json()['data']['scheduled_at'] == at(15, 0).isoformat()

        cancelled = client.patch(f"/api/appointments/{created['id']}/status",
                                 json={'status': 'cancelled', 'reason': 'Travel'}, headers=tenant_headers(salon))
        assert cancelled.get_json()['data']['cancellation_reason'] == 'Travel'

        again = client.patch(f"/api/appointments/{created['id']}/status",
                             json={'status': 'booked'}, headers=tenant_headers(salon))
        assert again.status_code == 409

    def test_delete(self, client, salon, payload):
        created = client.post('/api/appointments', json=payload, headers=tenant_headers(salon)).get_json()['data']

        response = client.delete(f"/api/appointments/{created['id']}", headers=tenant_headers(salon))

        assert response.status_code == 200
        assert client.get(f"/api/appointments/{created['id']}", headers=tenant_headers(salon)).status_code == 404

    def test_availability(self, client, salon, staff, payload):
        client.post('/api/appointments', json=payload, headers=tenant_headers(salon))

        busy = client.get(f'/api/appointments/availability?staff_id={staff.id}&start={at(10, 15).isoformat()}'
                          f'&duration=30', headers=tenant_headers(salon))
        free = client.get(f'/api/appointments/availability?staff_id={staff.id}&start={at(10, 45).isoformat()}'
                          f'&duration=30', headers=tenant_headers(salon))

        assert busy.get_json()['data']['available'] is False
        assert free.get_json()['data']['available'] is True

    def test_availability_for_other_tenants_staff(self, client, salon, other_staff):
        response = client.get(f'/api/appointments/availability?staff_id={other_staff.id}'
                              f'&start={at(10).isoformat()}', headers=tenant_headers(salon))

        assert response.status_code == 404

    def test_availability_bad_start(self, client, salon, staff):
        response = client.get(f'/api/appointments/availability?staff_id={staff.id}&start=soon',
                              headers=tenant_headers(salon))

        assert response.status_code == 422

    def test_slots(self, client, salon, staff, haircut):
        response = client.get(f'/api/appointments/slots?date={DAY.isoformat()}&service_ids={haircut.id}',
                              headers=tenant_headers(salon))

        slots = response.get_json()['data']
        # 30 minute service, 09:00 to 18:00 every 30 minutes
        assert len(slots) == 18
        assert slots[0]['available_staff'] == [{'id': staff.id, 'name': staff.name}]


class TestAdminApi:

    def test_token_required(self, client):
        assert client.get('/api/admin/tenants').status_code == 403
        assert client.get('/api/admin/tenants', headers={'X-Admin-Token': 'wrong'}).status_code == 403

    def test_create_and_manage_tenant(self, client):
        response = client.post('/api/admin/tenants', headers=ADMIN, json={
            'name': 'Velvet Studio', 'owner_email': 'velvet@test.com', 'owner_password': 'velvet-pass',
        })
        assert response.status_code == 201
        tenant = response.get_json()['data']
        assert tenant['subscription']['status'] == 'trial'
        assert tenant['owner']['email'] == 'velvet@test.com'

        activated = client.patch(f"/api/admin/tenants/{tenant['id']}/status", headers=ADMIN,
                                 json={'status': 'active'})
        assert activated.get_json()['data']['status'] == 'active'

        not_ready = client.post(f"/api/admin/tenants/{tenant['id']}/onboarding/complete", headers=ADMIN)
        assert not_ready.status_code == 400

        upgraded = client.post(f"/api/admin/tenants/{tenant['id']}/subscription/upgrade", headers=ADMIN,
                               json={'plan': 'pro', 'months': 2})
        assert upgraded.get_json()['data']['status'] == 'active'

        detail = client.get(f"/api/admin/tenants/{tenant['id']}", headers=ADMIN).get_json()['data']
        assert detail['subscription']['plan'] == 'pro'
        assert detail['stats']['appointments'] == 0

        cancelled = client.post(f"/api/admin/tenants/{tenant['id']}/subscription/cancel", headers=ADMIN)
        assert cancelled.get_json()['data']['status'] == 'cancelled'

    def test_invalid_transition_is_409(self, client, salon):
        response = client.patch(f'/api/admin/tenants/{salon.id}/status', headers=ADMIN,
                                json={'status': 'pending'})

        assert response.status_code == 409

    def test_list(self, client, salon):
        body = client.get('/api/admin/tenants', headers=ADMIN).get_json()

        assert [t['id'] for t in body['data']] == [salon.id]


class TestOperationalEndpoints:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json()['databases'] == {'platform': 'connected', 'tenant': 'connected'}

    def test_metrics(self, client, salon, payload):
        client.post('/api/appointments', json=payload, headers=tenant_headers(salon))

        response = client.get('/metrics')

        assert response.status_code == 200
        assert b'salonhub_booking_outcomes_total' in response.data

    def test_dashboard(self, client, salon):
        response = client.get('/api/dashboard', headers=tenant_headers(salon))

        assert response.status_code == 200
        assert response.get_json()['data']['appointments']['total'] == 0

    def test_unknown_route_is_json(self, client):
        response = client.get('/nope')

        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'
