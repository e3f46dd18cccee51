"""
Tests for the buyer API endpoints
"""
import uuid

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from buyers.models import Buyer
from services.buyer_service import RequestContext, create_buyer

HEADER = 'fullName,email,phone,city,propertyType,bhk,purpose,budgetMin,budgetMax,timeline,source,notes,tags,status'


@pytest.mark.django_db
class TestBuyersAuth:
    """Every buyer endpoint needs an authenticated user"""

    @pytest.mark.parametrize('method,path', [
        ('get', '/api/buyers'),
        ('post', '/api/buyers'),
        ('get', '/api/buyers/export'),
        ('post', '/api/buyers/import'),
    ])
    def test_unauthenticated_requests_rejected(self, client, method, path):
        response = getattr(client, method)(path)

        assert response.status_code == 401

    def test_invalid_token_rejected(self, client):
        response = client.get('/api/buyers', HTTP_AUTHORIZATION='Bearer not-a-token')

        assert response.status_code == 401

    def test_cookie_auth(self, client, api_client):
        client.cookies['auth-token'] = api_client.token

        response = client.get('/api/buyers')

        assert response.status_code == 200

    def test_health_is_public(self, client):
        response = client.get('/api/health')

        assert response.status_code == 200
        assert response.json() == {'status': 'ok'}


@pytest.mark.django_db
class TestCreateBuyerAPI:
    """Test POST /api/buyers"""

    def test_create_buyer(self, api_client, test_user, sample_buyer_data):
        response = api_client.post(
            '/api/buyers', sample_buyer_data,
            content_type='application/json', **api_client.auth_header
        )

        assert response.status_code == 201
        data = response.json()
        assert data['full_name'] == 'John Doe'
        assert data['status'] == 'New'
        assert data['owner_id'] == test_user.pk
        assert data['tags'] == ['urgent', 'premium']
        assert Buyer.objects.filter(pk=data['id']).exists()

    def test_validation_errors_are_field_attributed(self, api_client, sample_buyer_data):
        sample_buyer_data['phone'] = '123-456-7890'
        del sample_buyer_data['bhk']

        response = api_client.post(
            '/api/buyers', sample_buyer_data,
            content_type='application/json', **api_client.auth_header
        )

        assert response.status_code == 400
        data = response.json()
        assert data['error'] == 'Validation failed'
        assert data['errors'] == [{'field': 'phone', 'message': 'Phone must contain only digits'}]

    def test_malformed_field_reported_in_same_shape(self, api_client, sample_buyer_data):
        sample_buyer_data['budget_min'] = 'lots'

        response = api_client.post(
            '/api/buyers', sample_buyer_data,
            content_type='application/json', **api_client.auth_header
        )

        assert response.status_code == 400
        assert [error['field'] for error in response.json()['errors']] == ['budget_min']

    def test_oversized_budget_is_field_error(self, api_client, sample_buyer_data):
        sample_buyer_data['budget_max'] = 10 ** 20

        response = api_client.post(
            '/api/buyers', sample_buyer_data,
            content_type='application/json', **api_client.auth_header
        )

        assert response.status_code == 400
        assert response.json()['errors'] == [{'field': 'budget_max', 'message': 'Budget is too large'}]
        assert Buyer.objects.count() == 0

    def test_boolean_budget_rejected(self, api_client, sample_buyer_data):
        sample_buyer_data['budget_min'] = True

        response = api_client.post(
            '/api/buyers', sample_buyer_data,
            content_type='application/json', **api_client.auth_header
        )

        assert response.status_code == 400
        assert [error['field'] for error in response.json()['errors']] == ['budget_min']
        assert Buyer.objects.count() == 0

    def test_create_is_rate_limited(self, api_client, sample_buyer_data, settings):
        settings.BUYER_CREATE_RATE_LIMIT = 2

        statuses = [
            api_client.post(
                '/api/buyers', sample_buyer_data,
                content_type='application/json', **api_client.auth_header
            ).status_code
            for _ in range(3)
        ]

        assert statuses == [201, 201, 429]
        assert Buyer.objects.count() == 2

    def test_rate_limit_is_per_user(self, api_client, other_api_client, sample_buyer_data, settings):
        settings.BUYER_CREATE_RATE_LIMIT = 1
        api_client.post(
            '/api/buyers', sample_buyer_data,
            content_type='application/json', **api_client.auth_header
        )

        response = other_api_client.post(
            '/api/buyers', sample_buyer_data,
            content_type='application/json', **other_api_client.auth_header
        )

        assert response.status_code == 201


@pytest.mark.django_db
class TestListBuyersAPI:
    """Test GET /api/buyers"""

    def setup_method(self):
        self.buyers = []

    def create(self, user, data, **overrides):
        buyer = create_buyer(RequestContext(user=user), {**data, **overrides})
        self.buyers.append(buyer)
        return buyer

    def test_list_shape(self, api_client, test_user, sample_buyer_data):
        self.create(test_user, sample_buyer_data)

        response = api_client.get('/api/buyers', **api_client.auth_header)

        assert response.status_code == 200
        data = response.json()
        assert data['total'] == 1
        assert data['page'] == 1
        assert data['limit'] == 10
        assert data['total_pages'] == 1
        assert data['buyers'][0]['phone'] == '1234567890'

    def test_list_filters_and_search(self, api_client, test_user, other_user, sample_buyer_data):
        self.create(test_user, sample_buyer_data, full_name='Alice Brown', city='Mohali')
        self.create(other_user, sample_buyer_data, full_name='Bob Wilson', city='Mohali')
        self.create(test_user, sample_buyer_data, full_name='Carol King', city='Panchkula')

        response = api_client.get(
            '/api/buyers', {'city': 'Mohali', 'search': 'bob'}, **api_client.auth_header
        )

        data = response.json()
        assert data['total'] == 1
        assert data['buyers'][0]['full_name'] == 'Bob Wilson'

    def test_pagination_and_sort(self, api_client, test_user, sample_buyer_data):
        for name in ['Dan', 'Ann', 'Cid', 'Bea']:
            self.create(test_user, sample_buyer_data, full_name=name)

        response = api_client.get(
            '/api/buyers',
            {'page': 2, 'limit': 3, 'sort_by': 'fullName', 'sort_order': 'asc'},
            **api_client.auth_header
        )

        data = response.json()
        assert data['total'] == 4
        assert data['total_pages'] == 2
        assert [b['full_name'] for b in data['buyers']] == ['Dan']

    def test_invalid_filter_value(self, api_client):
        response = api_client.get('/api/buyers', {'city': 'Delhi'}, **api_client.auth_header)

        assert response.status_code == 400
        assert response.json()['errors'][0]['field'] == 'city'


@pytest.mark.django_db
class TestBuyerDetailAPI:
    """Test GET /api/buyers/{id}"""

    def test_detail_includes_history(self, api_client, test_user, sample_buyer_data):
        buyer = create_buyer(RequestContext(user=test_user), sample_buyer_data)

        response = api_client.get(f'/api/buyers/{buyer.pk}', **api_client.auth_header)

        assert response.status_code == 200
        data = response.json()
        assert data['buyer']['id'] == str(buyer.pk)
        assert len(data['history']) == 1
        assert data['history'][0]['diff']['action'] == 'created'
        assert data['history'][0]['changed_by_id'] == test_user.pk

    def test_any_user_can_read(self, other_api_client, test_user, sample_buyer_data):
        buyer = create_buyer(RequestContext(user=test_user), sample_buyer_data)

        response = other_api_client.get(f'/api/buyers/{buyer.pk}', **other_api_client.auth_header)

        assert response.status_code == 200

    def test_missing_buyer(self, api_client):
        response = api_client.get(f'/api/buyers/{uuid.uuid4()}', **api_client.auth_header)

        assert response.status_code == 404
        assert response.json() == {'error': 'Buyer not found'}


@pytest.mark.django_db
class TestUpdateBuyerAPI:
    """Test PUT /api/buyers/{id}"""

    def read_token(self, client, buyer_id):
        response = client.get(f'/api/buyers/{buyer_id}', **client.auth_header)
        return response.json()['buyer']['updated_at']

    def test_update_with_token_from_read(self, api_client, test_user, sample_buyer_data):
        buyer = create_buyer(RequestContext(user=test_user), sample_buyer_data)
        token = self.read_token(api_client, buyer.pk)

        response = api_client.put(
            f'/api/buyers/{buyer.pk}',
            {'status': 'Qualified', 'updated_at': token},
            content_type='application/json', **api_client.auth_header
        )

        assert response.status_code == 200
        assert response.json()['status'] == 'Qualified'
        assert response.json()['updated_at'] != token

        detail = api_client.get(f'/api/buyers/{buyer.pk}', **api_client.auth_header).json()
        assert detail['history'][0]['diff'] == {
            'action': 'updated',
            'changes': {'status': {'from': 'New', 'to': 'Qualified'}},
        }

    def test_reusing_token_conflicts(self, api_client, test_user, sample_buyer_data):
        buyer = create_buyer(RequestContext(user=test_user), sample_buyer_data)
        token = self.read_token(api_client, buyer.pk)
        api_client.put(
            f'/api/buyers/{buyer.pk}',
            {'status': 'Contacted', 'updated_at': token},
            content_type='application/json', **api_client.auth_header
        )

        response = api_client.put(
            f'/api/buyers/{buyer.pk}',
            {'status': 'Visited', 'updated_at': token},
            content_type='application/json', **api_client.auth_header
        )

        assert response.status_code == 409
        assert 'modified by another user' in response.json()['error']

    def test_non_owner_forbidden(self, other_api_client, test_user, sample_buyer_data):
        buyer = create_buyer(RequestContext(user=test_user), sample_buyer_data)
        token = self.read_token(other_api_client, buyer.pk)

        response = other_api_client.put(
            f'/api/buyers/{buyer.pk}',
            {'phone': 'invalid', 'updated_at': token},
            content_type='application/json', **other_api_client.auth_header
        )

        assert response.status_code == 403
        assert response.json() == {'error': 'You can only edit your own leads'}

    def test_invalid_update(self, api_client, test_user, sample_buyer_data):
        buyer = create_buyer(RequestContext(user=test_user), sample_buyer_data)
        token = self.read_token(api_client, buyer.pk)

        response = api_client.put(
            f'/api/buyers/{buyer.pk}',
            {'budget_max': 1, 'updated_at': token},
            content_type='application/json', **api_client.auth_header
        )

        assert response.status_code == 400
        assert response.json()['errors'][0]['field'] == 'budget_max'

    def test_token_is_required(self, api_client, test_user, sample_buyer_data):
        buyer = create_buyer(RequestContext(user=test_user), sample_buyer_data)

        response = api_client.put(
            f'/api/buyers/{buyer.pk}', {'status': 'Qualified'},
            content_type='application/json', **api_client.auth_header
        )

        assert response.status_code == 400
        assert response.json()['errors'][0]['field'] == 'updated_at'

    def test_update_missing_buyer(self, api_client):
        response = api_client.put(
            f'/api/buyers/{uuid.uuid4()}',
            {'status': 'Qualified', 'updated_at': '2024-01-01T00:00:00Z'},
            content_type='application/json', **api_client.auth_header
        )

        assert response.status_code == 404


@pytest.mark.django_db
class TestDeleteBuyerAPI:

    def test_owner_deletes(self, api_client, test_user, sample_buyer_data):
        buyer = create_buyer(RequestContext(user=test_user), sample_buyer_data)

        response = api_client.delete(f'/api/buyers/{buyer.pk}', **api_client.auth_header)

        assert response.status_code == 200
        assert response.json() == {'success': True}
        assert not Buyer.objects.filter(pk=buyer.pk).exists()

    def test_non_owner_gets_not_found(self, other_api_client, test_user, sample_buyer_data):
        buyer = create_buyer(RequestContext(user=test_user), sample_buyer_data)

        response = other_api_client.delete(f'/api/buyers/{buyer.pk}', **other_api_client.auth_header)

        assert response.status_code == 404
        assert response.json() == {'error': 'Buyer not found or access denied'}
        assert Buyer.objects.filter(pk=buyer.pk).exists()


@pytest.mark.django_db
class TestImportExportAPI:
    """Test CSV upload and download"""

    def upload(self, client, text):
        return client.post(
            '/api/buyers/import',
            {'file': SimpleUploadedFile('buyers.csv', text.encode('utf-8'), content_type='text/csv')},
            **client.auth_header
        )

    def test_export(self, api_client, test_user, sample_buyer_data):
        create_buyer(RequestContext(user=test_user), sample_buyer_data)

        response = api_client.get('/api/buyers/export', **api_client.auth_header)

        assert response.status_code == 200
        assert response['Content-Type'].startswith('text/csv')
        assert 'buyers.csv' in response['Content-Disposition']
        lines = response.content.decode().splitlines()
        assert lines[0] == HEADER
        assert len(lines) == 2

    def test_import(self, api_client, test_user):
        text = '\n'.join([
            HEADER,
            'Jane Smith,jane@example.com,9876543210,Mohali,Villa,3,Rent,30000,50000,0-3m,Referral,,furnished,',
            'Bad Phone,,98-76,Mohali,Plot,,Buy,,,>6m,Call,,,',
        ])

        response = self.upload(api_client, text)

        assert response.status_code == 200
        data = response.json()
        assert data['success_count'] == 1
        assert data['errors'][0]['row'] == 4
        assert data['errors'][0]['message'].startswith('phone: ')
        assert data['buyers'][0]['owner_id'] == test_user.pk

    def test_import_without_file(self, api_client):
        response = api_client.post('/api/buyers/import', **api_client.auth_header)

        assert response.status_code == 400
        assert response.json() == {'error': 'No file provided'}

    def test_import_file_too_large(self, api_client, settings):
        settings.BUYER_IMPORT_MAX_BYTES = 100
        row = 'Jane Smith,,9876543210,Mohali,Plot,,Rent,,,0-3m,Referral,,,'

        response = self.upload(api_client, '\n'.join([HEADER, row]))

        assert response.status_code == 400
        assert response.json() == {'error': 'File must be at most 100 bytes'}
        assert Buyer.objects.count() == 0

    def test_import_too_many_rows(self, api_client, settings):
        settings.BUYER_IMPORT_MAX_ROWS = 1
        row = 'Jane Smith,,9876543210,Mohali,Plot,,Rent,,,0-3m,Referral,,,'

        response = self.upload(api_client, '\n'.join([HEADER, row, row]))

        assert response.status_code == 400
        assert response.json() == {'error': 'Maximum 1 rows allowed'}
        assert Buyer.objects.count() == 0
