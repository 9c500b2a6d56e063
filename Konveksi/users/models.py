from django.contrib.auth.models import AbstractUser
from django.db import models


class CustomUser(AbstractUser):
    ROLE_CHOICES = [
        ('manager', 'Manager'),
        ('admin_staff', 'Admin staff'),
        ('purchasing', 'Purchasing'),
        ('tailor', 'Tailor'),
    ]

    full_name = models.CharField(max_length=150, blank=True)
    role = models.CharField(max_length=30, choices=ROLE_CHOICES, default='tailor')
    whatsapp_phone = models.CharField(max_length=20, blank=True)

    def __str__(self):
        return self.full_name or self.username

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
