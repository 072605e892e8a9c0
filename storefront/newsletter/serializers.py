from rest_framework import serializers
from .models import NewsletterSubscription


class SubscribeSerializer(serializers.Serializer):
    email = serializers.EmailField()

    def validate_email(self, value):
        return value.strip().lower()


class NewsletterSubscriptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = NewsletterSubscription
        fields = ['id', 'email', 'active', 'created_at', 'updated_at']
        read_only_fields = fields
