"""
Tests for core app - user directory and authentication.
Tests cover: User model and categories, Serializer validation, Auth flow integration.
"""
from io import StringIO

from django.core.management import call_command
from django.db import IntegrityError
from django.test import TestCase, override_settings
from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase
from rest_framework import status

from core.serializers import UserRegistrationSerializer, UserLoginSerializer

User = get_user_model()


# =============================================================================
# UNIT TESTS - Models
# =============================================================================

class UserModelTests(TestCase):
    """Test User model constraints and methods."""

    def test_create_user_defaults_to_regular_category(self):
        """A new user is an active, non-admin, regular passenger."""
        user = User.objects.create_user(
            email='test@example.com',
            password='testpass123',
            name='Test User'
        )

        self.assertTrue(user.check_password('testpass123'))
        self.assertEqual(user.category, User.Category.REGULAR)
        self.assertFalse(user.is_admin)
        self.assertTrue(user.is_active)

    def test_create_user_with_category(self):
        user = User.objects.create_user(
            email='senior@example.com',
            password='testpass123',
            name='Senior Passenger',
            category=User.Category.SENIOR_CITIZEN,
        )

        self.assertEqual(user.category, 'SENIOR_CITIZEN')

    def test_email_is_unique(self):
        """Test that duplicate emails raise error."""
        User.objects.create_user(email='unique@example.com', password='test123', name='First User')

        with self.assertRaises(IntegrityError):
            User.objects.create_user(email='unique@example.com', password='test123', name='Second User')

    def test_create_user_without_email_raises_error(self):
        """Test creating user without email raises ValueError."""
        with self.assertRaises(ValueError):
            User.objects.create_user(email='', password='test123', name='Test')

    def test_create_superuser_is_admin_category(self):
        """Superusers are admins for both Django and the reservation API."""
        user = User.objects.create_superuser(
            email='admin@example.com',
            password='admin123',
            name='Admin'
        )

        self.assertTrue(user.is_superuser)
        self.assertTrue(user.is_staff)
        self.assertTrue(user.is_admin)
        self.assertEqual(user.category, User.Category.ADMIN)

    def test_short_name_is_first_name(self):
        user = User.objects.create_user(email='t@example.com', password='x', name='Asha Rao')

        self.assertEqual(user.get_short_name(), 'Asha')
        self.assertEqual(str(user), 't@example.com')


# =============================================================================
# UNIT TESTS - Serializers
# =============================================================================

class UserSerializerTests(TestCase):
    """Test User serializers validation."""

    def registration(self, **overrides):
        data = {
            'email': 'test@example.com',
            'name': 'Test User',
            'password': 'StrongPass123!',
            'password_confirm': 'StrongPass123!'
        }
        data.update(overrides)
        return UserRegistrationSerializer(data=data)

    def test_registration_password_mismatch(self):
        """Test registration fails when passwords don't match."""
        serializer = self.registration(password_confirm='DifferentPass123!')

        self.assertFalse(serializer.is_valid())
        self.assertIn('password_confirm', serializer.errors)

    def test_registration_weak_password(self):
        """Test registration fails with weak password."""
        serializer = self.registration(password='123', password_confirm='123')

        self.assertFalse(serializer.is_valid())
        self.assertIn('password', serializer.errors)

    def test_registration_duplicate_email(self):
        """Emails are compared case-insensitively."""
        User.objects.create_user(email='existing@example.com', password='test123', name='Existing')

        serializer = self.registration(email='EXISTING@example.com')

        self.assertFalse(serializer.is_valid())
        self.assertIn('email', serializer.errors)

    def test_registration_cannot_self_assign_admin(self):
        serializer = self.registration(category='ADMIN')

        self.assertFalse(serializer.is_valid())
        self.assertIn('category', serializer.errors)

    def test_registration_accepts_ladies_category(self):
        serializer = self.registration(category='LADIES')

        self.assertTrue(serializer.is_valid(), serializer.errors)
        self.assertEqual(serializer.save().category, User.Category.LADIES)

    def test_login_invalid_credentials(self):
        """Test login fails with invalid credentials."""
        User.objects.create_user(email='test@example.com', password='correctpass', name='Test')

        serializer = UserLoginSerializer(data={'email': 'test@example.com', 'password': 'wrongpass'})

        self.assertFalse(serializer.is_valid())


# =============================================================================
# INTEGRATION TESTS - API Flow
# =============================================================================

class AuthenticationAPITests(APITestCase):
    """Integration tests for authentication flow."""

    def test_register_returns_jwt_tokens(self):
        """Test registration returns access and refresh tokens."""
        response = self.client.post('/api/register/', {
            'email': 'newuser@example.com',
            'name': 'New User',
            'password': 'SecurePass123!',
            'password_confirm': 'SecurePass123!',
            'category': 'SENIOR_CITIZEN'
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data['tokens'])
        self.assertIn('refresh', response.data['tokens'])
        self.assertEqual(response.data['user']['category'], 'SENIOR_CITIZEN')

    def test_full_auth_flow(self):
        """Test complete flow: register -> login -> refresh -> access protected route."""
        register_response = self.client.post('/api/register/', {
            'email': 'flowtest@example.com',
            'name': 'Flow Test',
            'password': 'FlowPass123!',
            'password_confirm': 'FlowPass123!'
        }, format='json')
        self.assertEqual(register_response.status_code, status.HTTP_201_CREATED)

        login_response = self.client.post('/api/login/', {
            'email': 'flowtest@example.com',
            'password': 'FlowPass123!'
        }, format='json')
        self.assertEqual(login_response.status_code, status.HTTP_200_OK)

        refresh_response = self.client.post('/api/token/refresh/', {
            'refresh': login_response.data['tokens']['refresh']
        }, format='json')
        self.assertEqual(refresh_response.status_code, status.HTTP_200_OK)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh_response.data['access']}")
        profile_response = self.client.get('/api/profile/')
        self.assertEqual(profile_response.status_code, status.HTTP_200_OK)
        self.assertEqual(profile_response.data['email'], 'flowtest@example.com')
        self.assertEqual(profile_response.data['category'], 'REGULAR')

    def test_protected_route_without_token(self):
        """Test protected route returns 401 without token."""
        response = self.client.get('/api/profile/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_protected_route_with_invalid_token(self):
        """Test protected route returns 401 with invalid token."""
        self.client.credentials(HTTP_AUTHORIZATION='Bearer invalid_token_here')

        response = self.client.get('/api/profile/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


# =============================================================================
# INTEGRATION TESTS - Seed command
# =============================================================================

@override_settings(MONGODB_ENABLED=False)
class SeedCommandTests(TestCase):

    def test_seed_oversubscribes_small_route(self):
        """The small sample route ends with full seats, a full RAC and two waitlisted."""
        from bookings.models import Booking, RACEntry, WaitlistEntry

        call_command('seed_db', stdout=StringIO())

        self.assertEqual(User.objects.filter(is_admin=True).count(), 1)
        self.assertEqual(Booking.objects.filter(status=Booking.CONFIRMED).count(), 11)
        self.assertEqual(RACEntry.objects.filter(status='ACTIVE').count(), 10)
        self.assertEqual(WaitlistEntry.objects.filter(status='ACTIVE').count(), 2)

    def test_seed_is_rerunnable(self):
        from bookings.models import Booking

        call_command('seed_db', stdout=StringIO())
        call_command('seed_db', stdout=StringIO())

        self.assertEqual(Booking.objects.count(), 23)
