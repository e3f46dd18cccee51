"""
Pytest configuration and fixtures
"""
import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import Client

from services.buyer_service import RequestContext

User = get_user_model()


@pytest.fixture(autouse=True)
def clear_cache():
    """Rate limit counters live in the cache; start every test from zero"""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def test_user(db):
    """Create a test user"""
    user, _ = User.objects.get_or_create(
        username='testuser',
        defaults={
            'email': 'test@example.com',
        }
    )
    user.set_password('testpass123')
    user.save()
    return user


@pytest.fixture
def other_user(db):
    """A second user who does not own the test buyers"""
    user, _ = User.objects.get_or_create(
        username='otheruser',
        defaults={
            'email': 'other@example.com',
        }
    )
    user.set_password('otherpass123')
    user.save()
    return user


@pytest.fixture
def ctx(test_user):
    return RequestContext(user=test_user)


@pytest.fixture
def other_ctx(other_user):
    return RequestContext(user=other_user)


@pytest.fixture
def api_client(test_user):
    """Create an API client with JWT token"""
    from authentication.jwt_auth import create_access_token

    client = Client()
    client.token = create_access_token(test_user)
    client.auth_header = {'HTTP_AUTHORIZATION': f'Bearer {client.token}'}
    return client


@pytest.fixture
def other_api_client(other_user):
    from authentication.jwt_auth import create_access_token

    client = Client()
    client.token = create_access_token(other_user)
    client.auth_header = {'HTTP_AUTHORIZATION': f'Bearer {client.token}'}
    return client


@pytest.fixture
def sample_buyer_data():
    """Sample buyer data for testing"""
    return {
        'full_name': 'John Doe',
        'email': 'john@example.com',
        'phone': '1234567890',
        'city': 'Chandigarh',
        'property_type': 'Apartment',
        'bhk': '2',
        'purpose': 'Buy',
        'budget_min': 5000000,
        'budget_max': 8000000,
        'timeline': '3-6m',
        'source': 'Website',
        'notes': 'Interested in 2BHK apartment',
        'tags': ['urgent', 'premium'],
    }


@pytest.fixture
def sample_csv_row():
    """A valid CSV row keyed by column name"""
    return {
        'fullName': 'Jane Smith',
        'email': 'jane@example.com',
        'phone': '9876543210',
        'city': 'Mohali',
        'propertyType': 'Villa',
        'bhk': '3',
        'purpose': 'Rent',
        'budgetMin': '30000',
        'budgetMax': '50000',
        'timeline': '0-3m',
        'source': 'Referral',
        'notes': 'Looking for furnished villa',
        'tags': 'furnished,premium',
        'status': 'New',
    }
