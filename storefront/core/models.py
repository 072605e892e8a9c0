import secrets
from datetime import timedelta

from django.contrib.auth.models import AbstractUser, UserManager as DjangoUserManager
from django.db import models
from django.utils import timezone

from .roles import Role, Capability, capabilities_for


class UserManager(DjangoUserManager):
    def create_superuser(self, username, email=None, password=None, **extra_fields):
        extra_fields.setdefault('role', Role.ADMIN)
        return super().create_superuser(username, email, password, **extra_fields)


class User(AbstractUser):
    """Storefront account; signs in with email"""
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.CUSTOMER, db_index=True)
    email_verified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    objects = UserManager()

    def save(self, *args, **kwargs):
        # Django admin access follows the role
        self.is_staff = self.is_superuser or self.role == Role.ADMIN
        super().save(*args, **kwargs)

    @property
    def capabilities(self):
        return capabilities_for(self.role)

    @property
    def is_admin(self):
        return Capability.ACCESS_ADMIN in self.capabilities

    @property
    def display_name(self):
        full_name = self.get_full_name()
        return full_name or self.email

    def __str__(self):
        return self.email

    class Meta:
        db_table = 'users'


class VerificationToken(models.Model):
    """One-time tokens for email verification and password resets"""
    PURPOSE_VERIFY_EMAIL = 'verify_email'
    PURPOSE_RESET_PASSWORD = 'reset_password'
    PURPOSE_CHOICES = [
        (PURPOSE_VERIFY_EMAIL, 'Verify Email'),
        (PURPOSE_RESET_PASSWORD, 'Reset Password'),
    ]

    identifier = models.EmailField(db_index=True)
    token = models.CharField(max_length=64, unique=True)
    purpose = models.CharField(max_length=20, choices=PURPOSE_CHOICES)
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.identifier} ({self.get_purpose_display()})"

    @property
    def is_expired(self):
        return timezone.now() > self.expires_at

    @classmethod
    def issue(cls, identifier, purpose, hours):
        """Replace any outstanding token for this identifier/purpose with a fresh one"""
        cls.objects.filter(identifier=identifier, purpose=purpose).delete()
        return cls.objects.create(
            identifier=identifier,
            token=secrets.token_hex(32),
            purpose=purpose,
            expires_at=timezone.now() + timedelta(hours=hours),
        )

    class Meta:
        db_table = 'verification_tokens'
        ordering = ['-created_at']
