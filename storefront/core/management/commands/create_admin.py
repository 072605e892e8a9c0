"""
Management command to create an ADMIN user or promote an existing account
"""
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from storefront.core.roles import Role

User = get_user_model()


class Command(BaseCommand):
    help = "Creates an ADMIN user, or promotes an existing user to ADMIN"

    def add_arguments(self, parser):
        parser.add_argument('email', help='Email address of the admin account')
        parser.add_argument('--password', help='Password for a new account (required when creating)')
        parser.add_argument('--first-name', default='', help='First name for a new account')
        parser.add_argument('--last-name', default='', help='Last name for a new account')

    def handle(self, *args, **options):
        email = options['email'].strip().lower()
        user = User.objects.filter(email__iexact=email).first()

        if user is not None:
            if user.role == Role.ADMIN:
                self.stdout.write(self.style.WARNING(f"{user.email} is already an admin"))
                return
            user.role = Role.ADMIN
            user.save()
            self.stdout.write(self.style.SUCCESS(f"Promoted {user.email} to ADMIN"))
            return

        if not options['password']:
            raise CommandError("--password is required when creating a new admin")

        user = User.objects.create_user(
            username=email,
            email=email,
            password=options['password'],
            first_name=options['first_name'],
            last_name=options['last_name'],
            role=Role.ADMIN,
            email_verified_at=timezone.now(),
        )
        self.stdout.write(self.style.SUCCESS(f"Created admin user {user.email}"))
