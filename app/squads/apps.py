"""
Squads application configuration.

Squads are the community groups whose chat channels the messaging core
serves. This app owns the group and membership records only.
"""

from django.apps import AppConfig


class SquadsConfig(AppConfig):
    """Configuration for the squads application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "squads"
    verbose_name = "Squads"
