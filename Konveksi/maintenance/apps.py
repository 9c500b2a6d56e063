"""
Configuration for the maintenance app. This app holds administrative
actions such as rebuilding cached completion and stock figures, kept
apart from the production app so workers cannot reach them.
"""

from django.apps import AppConfig


class MaintenanceConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'maintenance'
