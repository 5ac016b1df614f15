from rest_framework import generics, permissions, views
from rest_framework.response import Response

from .models import Notification
from .serializers import NotificationSerializer


class NotificationListView(generics.ListAPIView):
    """The logged-in user's notifications, newest first."""
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = NotificationSerializer

    def get_queryset(self):
        queryset = Notification.objects.filter(user=self.request.user)
        if self.request.query_params.get('unread') in ('1', 'true'):
            queryset = queryset.filter(is_read=False)
        return queryset


class MarkNotificationsReadView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        ids = request.data.get('ids')
        queryset = Notification.objects.filter(user=request.user, is_read=False)
        if ids:
            queryset = queryset.filter(id__in=ids)
        updated = queryset.update(is_read=True)
        return Response({"status": "ok", "updated": updated})
