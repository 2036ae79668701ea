"""
Management command to seed the database with sample data.

Usage:
    python manage.py seed_db           # Seed with default data
    python manage.py seed_db --clear   # Clear existing data first
"""
from datetime import time
from decimal import Decimal
from django.core.management.base import BaseCommand
from django.db import transaction

from core.models import User
from trains.models import Train, Route, Compartment, Seat
from bookings.models import Booking, Payment, RACEntry, WaitlistEntry
from bookings.services import ReservationCoordinator


class Command(BaseCommand):
    help = 'Seed the database with sample trains, routes, seats and bookings'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self.clear_data()

        self.stdout.write('Seeding database...')

        with transaction.atomic():
            users = self.create_users()
            trains = self.create_trains()
            routes = self.create_routes(trains)

        # Bookings go through the coordinator so seats and queues stay consistent.
        self.create_sample_bookings(users, routes)

        self.stdout.write(self.style.SUCCESS('Database seeded successfully!'))
        self.print_summary()

    def clear_data(self):
        RACEntry.objects.all().delete()
        WaitlistEntry.objects.all().delete()
        Payment.objects.all().delete()
        Booking.objects.all().delete()
        Seat.objects.all().delete()
        Route.objects.all().delete()
        Compartment.objects.all().delete()
        Train.objects.all().delete()
        User.objects.filter(is_superuser=False).delete()
        self.stdout.write(self.style.WARNING('  Cleared all non-superuser data'))

    def create_users(self):
        users = []

        admin, created = User.objects.get_or_create(
            email='admin@railways.example.com',
            defaults={
                'name': 'Admin User',
                'is_admin': True,
                'is_staff': True,
                'category': User.Category.ADMIN,
            }
        )
        if created:
            admin.set_password('Admin@123')
            admin.save()
            self.stdout.write('  Created admin: admin@railways.example.com / Admin@123')
        users.append(admin)

        test_users = [
            ('john@example.com', 'John Doe', User.Category.REGULAR),
            ('jane@example.com', 'Jane Smith', User.Category.LADIES),
            ('raj@example.com', 'Raj Kumar', User.Category.SENIOR_CITIZEN),
        ]

        for email, name, category in test_users:
            user, created = User.objects.get_or_create(
                email=email,
                defaults={'name': name, 'category': category}
            )
            if created:
                user.set_password('User@123')
                user.save()
                self.stdout.write(f'  Created user: {email} / User@123 ({category})')
            users.append(user)

        return users

    def create_trains(self):
        trains_data = [
            ('12951', 'Mumbai Rajdhani', [('B1', '3A', 72), ('B2', '3A', 72), ('A1', '2A', 48)]),
            ('12301', 'Howrah Rajdhani', [('B1', '3A', 72), ('H1', '1A', 24)]),
            ('12627', 'Karnataka Express', [('S1', 'SL', 72), ('S2', 'SL', 72), ('B1', '3A', 72)]),
            ('12245', 'Shatabdi Express', [('S1', 'SL', 8)]),
        ]

        trains = []
        for number, name, compartments in trains_data:
            train, created = Train.objects.get_or_create(
                train_number=number,
                defaults={'train_name': name}
            )
            for compartment_name, class_type, berths in compartments:
                Compartment.objects.get_or_create(
                    train=train,
                    compartment_name=compartment_name,
                    defaults={'class_type': class_type, 'berth_count': berths}
                )
            trains.append(train)
            if created:
                self.stdout.write(f'  Created train: {number} - {name}')

        return trains

    def create_routes(self, trains):
        routes_data = [
            ('Delhi', 'Mumbai', time(16, 55), time(8, 35), Decimal('2500.00')),
            ('Delhi', 'Kolkata', time(17, 0), time(10, 0), Decimal('2200.00')),
            ('Bangalore', 'Delhi', time(20, 0), time(6, 30), Decimal('1900.00')),
            ('Chennai', 'Bangalore', time(6, 0), time(11, 0), Decimal('800.00')),
        ]

        routes = []
        for train, (source, dest, dep, arr, price) in zip(trains, routes_data):
            route, created = Route.objects.get_or_create(
                train=train,
                source_station=source,
                destination_station=dest,
                defaults={'departure_time': dep, 'arrival_time': arr, 'price': price}
            )
            if created:
                seats = Seat.objects.create_layout(route)
                self.stdout.write(f'  Created route {route} with {len(seats)} seats')
            routes.append(route)

        return routes

    def create_sample_bookings(self, users, routes):
        if Booking.objects.exists():
            self.stdout.write('  Bookings already present, skipping samples')
            return

        coordinator = ReservationCoordinator()
        passengers = [u for u in users if not u.is_admin]

        # A couple of confirmed seats on the long-distance routes.
        for user, route in zip(passengers, routes):
            seat = Seat.objects.for_scope(route.train_id, route.id).available().first()
            result = coordinator.create_booking(user.id, route.train_id, route.id, seat.id, user.name, 30)
            self.stdout.write(f'  {result.pnr}: {result.message}')

        # Oversubscribe the small route so RAC and the waitlist have entries.
        small = routes[-1]
        seat_ids = list(Seat.objects.for_scope(small.train_id, small.id).values_list('id', flat=True))
        for i in range(len(seat_ids) + 12):
            user = passengers[i % len(passengers)]
            seat_id = seat_ids[i % len(seat_ids)]
            coordinator.create_booking(
                user.id, small.train_id, small.id, seat_id, f'{user.name} Passenger {i + 1}', 20 + i
            )

        self.stdout.write(
            f'  Route {small.id}: '
            f'RAC {coordinator.rac_queue.count(small.train_id, small.id)}, '
            f'waitlist {coordinator.waitlist.count(small.train_id, small.id)}'
        )

    def print_summary(self):
        self.stdout.write('\n' + '=' * 50)
        self.stdout.write('Database Summary:')
        self.stdout.write(f'  Users: {User.objects.count()}')
        self.stdout.write(f'  Trains: {Train.objects.count()}')
        self.stdout.write(f'  Routes: {Route.objects.count()}')
        self.stdout.write(f'  Seats: {Seat.objects.count()}')
        for status, label in Booking.STATUS_CHOICES:
            self.stdout.write(f'  {label} bookings: {Booking.objects.filter(status=status).count()}')
        self.stdout.write('=' * 50)
        self.stdout.write('\nTest Credentials:')
        self.stdout.write('  Admin: admin@railways.example.com / Admin@123')
        self.stdout.write('  User:  john@example.com / User@123')
        self.stdout.write('=' * 50 + '\n')
