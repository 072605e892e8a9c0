from django.db import models


class NewsletterSubscription(models.Model):
    """Newsletter sign-up; unsubscribing flips `active` instead of deleting"""
    email = models.EmailField(unique=True)
    active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.email

    class Meta:
        db_table = 'newsletter_subscriptions'
        ordering = ['-created_at']
