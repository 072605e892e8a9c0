import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from storefront.core.permissions import CanManageNewsletter
from .models import NewsletterSubscription
from .serializers import SubscribeSerializer, NewsletterSubscriptionSerializer

logger = logging.getLogger(__name__)

SUBSCRIBE_FAILED = 'Failed to subscribe to newsletter. Please try again.'


def _email_or_error(request):
    """
    Returns:
        tuple: (normalized email, None) or (None, error Response)
    """
    if not isinstance(request.data, dict) or not request.data.get('email'):
        return None, Response({'success': False, 'error': 'Email is required'}, status=status.HTTP_400_BAD_REQUEST)
    serializer = SubscribeSerializer(data=request.data)
    if not serializer.is_valid():
        return None, Response({'success': False, 'error': 'Please enter a valid email address'},
                              status=status.HTTP_400_BAD_REQUEST)
    return serializer.validated_data['email'], None


@api_view(['POST'])
@permission_classes([AllowAny])
def subscribe(request):
    """Subscribe an email, re-activating a previous subscription if there is one"""
    email, failure = _email_or_error(request)
    if failure is not None:
        return failure

    try:
        subscription = NewsletterSubscription.objects.filter(email=email).first()
        if subscription is not None:
            if subscription.active:
                return Response(
                    {'success': False, 'error': 'This email is already subscribed to our newsletter'},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            subscription.active = True
            subscription.save(update_fields=['active', 'updated_at'])
            logger.info(f"Newsletter subscription re-activated for {email}")
            return Response({'success': True, 'message': 'Thank you for re-subscribing to our newsletter!'})

        NewsletterSubscription.objects.create(email=email, active=True)
    except DatabaseError as e:
        logger.error(f"Newsletter subscription error: {str(e)}", exc_info=True)
        return Response({'success': False, 'error': SUBSCRIBE_FAILED}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.info(f"New newsletter subscription for {email}")
    return Response({'success': True, 'message': 'Thank you for subscribing to our newsletter!'},
                    status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([AllowAny])
def unsubscribe(request):
    email, failure = _email_or_error(request)
    if failure is not None:
        return failure

    try:
        updated = NewsletterSubscription.objects.filter(email=email, active=True).update(active=False)
    except DatabaseError as e:
        logger.error(f"Newsletter unsubscribe error: {str(e)}", exc_info=True)
        return Response({'success': False, 'error': 'Failed to unsubscribe from newsletter. Please try again.'},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    if not updated:
        return Response({'success': False, 'error': 'This email is not subscribed to our newsletter'},
                        status=status.HTTP_404_NOT_FOUND)
    logger.info(f"Newsletter subscription deactivated for {email}")
    return Response({'success': True, 'message': 'You have been unsubscribed from our newsletter'})


@api_view(['GET'])
@permission_classes([IsAuthenticated, CanManageNewsletter])
def subscriber_list(request):
    """Admin listing; `?active=true|false` narrows it"""
    queryset = NewsletterSubscription.objects.all()
    active = request.query_params.get('active')
    if active is not None and active != '':
        queryset = queryset.filter(active=active.lower() in ('true', '1', 'yes'))
    try:
        data = NewsletterSubscriptionSerializer(queryset, many=True).data
    except DatabaseError as e:
        logger.error(f"Error listing newsletter subscribers: {str(e)}", exc_info=True)
        return Response({'success': False, 'error': 'Failed to get subscribers'},
                        status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({'success': True, 'data': data, 'count': len(data)})
