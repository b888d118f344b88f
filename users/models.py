from django.db import models
from django.contrib.auth.models import AbstractUser
from phonenumber_field.modelfields import PhoneNumberField


class CustomUser(AbstractUser):
    ROLE_DRIVER = 'driver'
    ROLE_HOST = 'host'
    ROLE_ADMIN = 'admin'
    ROLE_CHOICES = (
        (ROLE_DRIVER, 'Driver'),
        (ROLE_HOST, 'Host'),
        (ROLE_ADMIN, 'Admin'),
    )

    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_DRIVER)
    phone_number = PhoneNumberField(unique=True, null=True, blank=True)
    profile_picture = models.ImageField(upload_to='profile_pics/', null=True, blank=True)

    # Payment gateway customer, created on first charge
    razorpay_customer_id = models.CharField(max_length=100, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def is_admin(self):
        return self.role == self.ROLE_ADMIN or self.is_superuser

    @property
    def is_host(self):
        return self.role == self.ROLE_HOST
