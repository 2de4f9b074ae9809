from django.conf import settings
from django.db import DatabaseError
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from order.models import Order


class HealthView(APIView):
    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        return Response({"ok": True, "env": settings.APP_ENV})


class DatabaseHealthView(APIView):
    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        try:
            list(Order.objects.values_list("id", flat=True)[:1])
        except DatabaseError as exc:
            return Response({"ok": False, "error": str(exc)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response({"ok": True})
