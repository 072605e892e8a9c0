from django.urls import path
from .views import subscribe, unsubscribe, subscriber_list

urlpatterns = [
    path('newsletter/', subscribe, name='newsletter-subscribe'),
    path('newsletter/unsubscribe/', unsubscribe, name='newsletter-unsubscribe'),
    path('newsletter/subscribers/', subscriber_list, name='newsletter-subscribers'),
]
