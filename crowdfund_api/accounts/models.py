from django.db import models
from django.db.models import F
from django.contrib.auth.models import AbstractUser, BaseUserManager
from auditlog.registry import auditlog
from auditlog.models import AuditlogHistoryField


class CustomUserManager(BaseUserManager):
    """
    Manager for CustomUser. Handles user and superuser creation using email as the unique identifier.
    """
    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError("Email is required.")
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)

        return self.create_user(email, password, **extra_fields)

    def increment_stats(self, user_id, **deltas):
        """
        Atomically add ``deltas`` to the stat counters of one user,
        e.g. ``increment_stats(user.id, total_contributed=amount)``.
        """
        return self.filter(pk=user_id).update(
            **{field: F(field) + delta for field, delta in deltas.items()}
        )


class CustomUser(AbstractUser):
    """
    Custom user model for the platform.
    Uses email as the unique identifier; staff users act as crowdfunding admins.
    Carries denormalized crowdfunding stats and an audit history.
    """
    email = models.EmailField(unique=True, blank=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    username = None

    projects_created = models.IntegerField(default=0)
    total_contributed = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    total_raised = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    votes_cast = models.PositiveIntegerField(default=0)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['first_name', 'last_name',]

    objects = CustomUserManager()

    history = AuditlogHistoryField()

    def __str__(self):
        return self.email


auditlog.register(CustomUser, exclude_fields=['password', 'last_login'])
