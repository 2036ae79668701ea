"""
Tests for the trains app.
Tests cover: Model constraints, seat layout, SeatInventory operations,
Search API, seat availability API, Admin-only access.
"""
from decimal import Decimal
from datetime import time
from django.test import TestCase, override_settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError
from rest_framework.test import APITestCase
from rest_framework import status

from trains.inventory import SeatInventory
from trains.models import Train, Route, Compartment, Seat, berth_type_for

User = get_user_model()


def make_route(train_number='12951', berths=8, source='Delhi', destination='Mumbai'):
    """Train with one sleeper compartment and a route with its seats laid out."""
    train = Train.objects.create(train_number=train_number, train_name='Test Express')
    Compartment.objects.create(train=train, compartment_name='S1', class_type='SL', berth_count=berths)
    route = Route.objects.create(
        train=train,
        source_station=source,
        destination_station=destination,
        departure_time=time(16, 55),
        arrival_time=time(8, 35),
        price=Decimal('500.00'),
    )
    Seat.objects.create_layout(route)
    return train, route


# ==========================================================================
# UNIT TESTS - Models
# ==========================================================================

class TrainModelTests(TestCase):
    """Test Train model constraints."""

    def test_create_train(self):
        """Test creating a train is successful."""
        train = Train.objects.create(train_number='12345', train_name='Express Train')

        self.assertEqual(train.train_number, '12345')
        self.assertTrue(train.is_active)

    def test_train_number_unique(self):
        """Test train number must be unique."""
        Train.objects.create(train_number='UNIQUE001', train_name='Train 1')

        with self.assertRaises(IntegrityError):
            Train.objects.create(train_number='UNIQUE001', train_name='Train 2')

    def test_train_string_representation(self):
        """Test Train __str__ format."""
        train = Train.objects.create(train_number='12951', train_name='Mumbai Rajdhani')

        self.assertEqual(str(train), '12951 - Mumbai Rajdhani')


class SeatLayoutTests(TestCase):
    """Test seat rows generated for a route."""

    def test_layout_creates_one_seat_per_berth(self):
        """Every berth of every compartment becomes an available seat."""
        train, route = make_route(berths=8)
        Compartment.objects.create(train=train, compartment_name='S2', berth_count=4)
        other = Route.objects.create(
            train=train, source_station='Mumbai', destination_station='Delhi',
            departure_time=time(9, 0), arrival_time=time(23, 0), price=Decimal('450.00'),
        )
        Seat.objects.create_layout(other)

        self.assertEqual(route.seats.count(), 8)
        self.assertEqual(other.seats.count(), 12)
        self.assertTrue(all(seat.is_available for seat in other.seats.all()))

    def test_berth_types_follow_bay_pattern(self):
        """Berths cycle lower, middle, upper and then the side berths."""
        self.assertEqual(berth_type_for(1), 'LOWER')
        self.assertEqual(berth_type_for(3), 'UPPER')
        self.assertEqual(berth_type_for(7), 'SIDE_LOWER')
        self.assertEqual(berth_type_for(8), 'SIDE_UPPER')
        self.assertEqual(berth_type_for(9), 'LOWER')

    def test_seat_number_unique_per_route(self):
        """Test the same seat number cannot appear twice on a route."""
        _, route = make_route(berths=2)
        compartment = route.train.compartments.get()

        with self.assertRaises(IntegrityError):
            Seat.objects.create(route=route, compartment=compartment, seat_number='S1-1', berth_type='LOWER')


# ==========================================================================
# UNIT TESTS - SeatInventory
# ==========================================================================

class SeatInventoryTests(TestCase):

    def setUp(self):
        self.train, self.route = make_route(berths=8)
        self.inventory = SeatInventory()
        self.seat = self.route.seats.get(seat_number='S1-1')

    def test_allocate_free_seat(self):
        """Allocating a free seat succeeds and marks it unavailable."""
        self.assertTrue(self.inventory.allocate(self.seat.id))

        self.seat.refresh_from_db()
        self.assertFalse(self.seat.is_available)

    def test_allocate_taken_seat_fails(self):
        """A second allocation of the same seat is refused."""
        self.assertTrue(self.inventory.allocate(self.seat.id))
        self.assertFalse(self.inventory.allocate(self.seat.id))

    def test_allocate_unknown_seat_fails(self):
        self.assertFalse(self.inventory.allocate(999999))

    def test_release_makes_seat_available(self):
        """Release frees a taken seat and is idempotent on a free one."""
        self.inventory.allocate(self.seat.id)

        self.assertTrue(self.inventory.release(self.seat.id))
        self.seat.refresh_from_db()
        self.assertTrue(self.seat.is_available)
        self.assertTrue(self.inventory.release(self.seat.id))

    def test_release_unknown_seat(self):
        self.assertFalse(self.inventory.release(999999))

    def test_list_available_excludes_taken_seats(self):
        self.inventory.allocate(self.seat.id)

        available = self.inventory.list_available(self.train.id, self.route.id)

        self.assertEqual(len(available), 7)
        self.assertNotIn(self.seat.id, [s.id for s in available])

    def test_list_available_requires_matching_train(self):
        """A route queried under the wrong train yields nothing."""
        other_train, _ = make_route(train_number='22222')

        self.assertEqual(self.inventory.list_available(other_train.id, self.route.id), [])

    def test_recommend_lower_berths_for_senior_citizens(self):
        """Senior citizens are offered lower and side lower berths only."""
        seats = self.inventory.recommend(self.train.id, 'SENIOR_CITIZEN', route_id=self.route.id)

        self.assertEqual({s.berth_type for s in seats}, {'LOWER', 'SIDE_LOWER'})
        self.assertEqual([s.seat_number for s in seats], ['S1-1', 'S1-4', 'S1-7'])

    def test_recommend_is_subset_of_available(self):
        """Recommendations never include allocated seats."""
        self.inventory.allocate(self.seat.id)
        available = {s.id for s in self.inventory.list_available(self.train.id, self.route.id)}

        for category in ['REGULAR', 'SENIOR_CITIZEN', 'LADIES', 'ADMIN']:
            recommended = {s.id for s in self.inventory.recommend(self.train.id, category, route_id=self.route.id)}
            self.assertTrue(recommended <= available, category)

    def test_recommend_regular_gets_everything_available(self):
        seats = self.inventory.recommend(self.train.id, 'REGULAR', route_id=self.route.id)

        self.assertEqual(len(seats), 8)


# ==========================================================================
# INTEGRATION TESTS - Train Search API
# ==========================================================================

@override_settings(MONGODB_ENABLED=False)
class TrainSearchAPITests(APITestCase):
    """Integration tests for train search API."""

    def setUp(self):
        self.user = User.objects.create_user(
            email='user@example.com',
            password='UserPass123!',
            name='Regular User'
        )
        self.train, self.route = make_route(berths=8)

        response = self.client.post('/api/login/', {
            'email': 'user@example.com',
            'password': 'UserPass123!'
        }, format='json')
        self.token = response.data['tokens']['access']
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {self.token}')

    def test_search_trains_success(self):
        """Test searching trains between stations."""
        response = self.client.get('/api/trains/search/', {
            'source': 'Delhi',
            'destination': 'Mumbai'
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        result = response.data['results'][0]
        self.assertEqual(result['train_number'], '12951')
        self.assertEqual(result['total_seats'], 8)
        self.assertEqual(result['available_seats'], 8)

    def test_search_reflects_allocated_seats(self):
        SeatInventory().allocate(self.route.seats.first().id)

        response = self.client.get('/api/trains/search/', {'source': 'Delhi', 'destination': 'Mumbai'})

        self.assertEqual(response.data['results'][0]['available_seats'], 7)

    def test_search_trains_case_insensitive(self):
        """Test search is case insensitive."""
        response = self.client.get('/api/trains/search/', {
            'source': 'DELHI',
            'destination': 'mumbai'
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_search_trains_no_results(self):
        """Test search with no matching trains."""
        response = self.client.get('/api/trains/search/', {
            'source': 'Chennai',
            'destination': 'Kolkata'
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 0)

    def test_search_trains_missing_params(self):
        """Test search fails without required params."""
        response = self.client.get('/api/trains/search/', {'source': 'Delhi'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_search_with_pagination(self):
        """Test search pagination with limit and offset."""
        response = self.client.get('/api/trains/search/', {
            'source': 'Delhi',
            'destination': 'Mumbai',
            'limit': 5,
            'offset': 0
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['limit'], 5)
        self.assertEqual(response.data['offset'], 0)

    def test_search_unauthenticated(self):
        """Test search fails without authentication."""
        self.client.credentials()
        response = self.client.get('/api/trains/search/', {
            'source': 'Delhi',
            'destination': 'Mumbai'
        })

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


@override_settings(MONGODB_ENABLED=False)
class SeatAvailabilityAPITests(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(
            email='senior@example.com',
            password='UserPass123!',
            name='Senior User',
            category=User.Category.SENIOR_CITIZEN,
        )
        self.train, self.route = make_route(berths=8)
        self.client.force_authenticate(user=self.user)

    def test_lists_available_and_recommended_seats(self):
        url = f'/api/trains/{self.train.id}/routes/{self.route.id}/seats/'
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['available_count'], 8)
        self.assertEqual(
            [s['seat_number'] for s in response.data['recommended']],
            ['S1-1', 'S1-4', 'S1-7']
        )

    def test_unknown_route_returns_404(self):
        response = self.client.get(f'/api/trains/{self.train.id}/routes/999999/seats/')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])


# ==========================================================================
# INTEGRATION TESTS - Admin Only Access
# ==========================================================================

class AdminOnlyAPITests(APITestCase):
    """Test admin-only route access control."""

    TRAIN_PAYLOAD = {
        'train_number': '12345',
        'train_name': 'Test Train',
        'compartments': [
            {'compartment_name': 'S1', 'class_type': 'SL', 'berth_count': 8},
            {'compartment_name': 'B1', 'class_type': '3A', 'berth_count': 4},
        ],
        'source_station': 'Delhi',
        'destination_station': 'Mumbai',
        'departure_time': '10:00:00',
        'arrival_time': '18:00:00',
        'price': '1000.00',
    }

    def setUp(self):
        self.regular_user = User.objects.create_user(
            email='user@example.com',
            password='UserPass123!',
            name='Regular User'
        )
        self.admin_user = User.objects.create_user(
            email='admin@example.com',
            password='AdminPass123!',
            name='Admin User',
            is_admin=True,
        )

    def get_token(self, email, password):
        """Helper to get JWT token."""
        response = self.client.post('/api/login/', {
            'email': email,
            'password': password
        }, format='json')
        return response.data['tokens']['access']

    def test_regular_user_cannot_create_train(self):
        """Test regular user gets 403 on admin route."""
        token = self.get_token('user@example.com', 'UserPass123!')
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = self.client.post('/api/trains/', self.TRAIN_PAYLOAD, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_can_create_train(self):
        """Admin creates a train, its compartments, a route and its seats."""
        token = self.get_token('admin@example.com', 'AdminPass123!')
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = self.client.post('/api/trains/', self.TRAIN_PAYLOAD, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['train']['train_number'], '12345')
        self.assertEqual(response.data['route']['seat_count'], 12)
        self.assertEqual(Seat.objects.filter(route_id=response.data['route']['id']).count(), 12)

    def test_same_source_and_destination_rejected(self):
        token = self.get_token('admin@example.com', 'AdminPass123!')
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        payload = dict(self.TRAIN_PAYLOAD, destination_station='delhi')

        response = self.client.post('/api/trains/', payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Train.objects.exists())

    def test_new_route_lays_out_only_requested_compartments(self):
        """Re-posting a train lays out seats only for the coaches named in the request."""
        token = self.get_token('admin@example.com', 'AdminPass123!')
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        self.client.post('/api/trains/', self.TRAIN_PAYLOAD, format='json')

        payload = dict(
            self.TRAIN_PAYLOAD,
            destination_station='Pune',
            compartments=[{'compartment_name': 'A1', 'class_type': '2A', 'berth_count': 6}],
        )
        response = self.client.post('/api/trains/', payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['route']['seat_count'], 6)
        seats = Seat.objects.filter(route_id=response.data['route']['id'])
        self.assertEqual(set(seats.values_list('compartment__compartment_name', flat=True)), {'A1'})

    def test_admin_can_list_trains(self):
        """Test admin can list all trains."""
        Train.objects.create(train_number='99999', train_name='Existing Train')

        token = self.get_token('admin@example.com', 'AdminPass123!')
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = self.client.get('/api/trains/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_unauthenticated_cannot_access_admin_route(self):
        """Test unauthenticated request gets 401."""
        response = self.client.post('/api/trains/', {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
