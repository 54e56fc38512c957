from django.contrib.auth.models import User
from django.db.models.signals import post_save
from django.dispatch import receiver

from leasing_app.models import UserProfile


@receiver(post_save, sender=User)
def ensure_user_profile(sender, instance, created, **kwargs):
    """Every account gets a profile (tenant by default)."""
    if created:
        UserProfile.objects.get_or_create(user=instance)
