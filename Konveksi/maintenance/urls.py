"""URL configuration for the maintenance app."""

from django.urls import path
from . import views

app_name = 'maintenance'

urlpatterns = [
    # Rebuild cached completion/stock figures (POST, manager only)
    path('reconcile/', views.reconcile, name='reconcile'),
]
