"""
Signal handlers that feed squad membership changes into group chat.

Connected from ChatConfig.ready(). Any save or delete of a SquadMember
row becomes a membership.changed event on that squad's group channel, so
open chat sessions can refresh their write access and consumers can drop
users who lost read access.
"""

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from chat.realtime import publish_membership_change
from squads.models import SquadMember
from squads.services import ROLE_NONE, STATUS_NONE


@receiver(post_save, sender=SquadMember)
def membership_saved(sender, instance, created, **kwargs):
    publish_membership_change(instance.squad_id, instance.user_id, instance.status, instance.role)


@receiver(post_delete, sender=SquadMember)
def membership_deleted(sender, instance, **kwargs):
    publish_membership_change(instance.squad_id, instance.user_id, STATUS_NONE, ROLE_NONE)
