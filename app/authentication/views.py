"""
Authentication views.

This module provides API views for:
- Current user details, including the capabilities their role grants

Related files:
    - capabilities.py: Role -> capability mapping
    - urls.py: URL routing

Note:
    Token endpoints come straight from djangorestframework-simplejwt
    (see urls.py).
"""

from drf_spectacular.utils import extend_schema
from rest_framework import serializers
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.capabilities import Capability, has_capability
from authentication.models import User


class UserSerializer(serializers.ModelSerializer):
    """
    Current user serializer.

    capabilities lists every Capability the user's role grants, so
    clients can hide actions the API would refuse.
    """

    capabilities = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "email", "name", "phone", "role", "capabilities"]
        read_only_fields = fields

    def get_capabilities(self, obj) -> list[str]:
        return [capability.value for capability in Capability if has_capability(obj, capability)]


class MeView(APIView):
    """
    API view for the current user.

    GET: Retrieve the authenticated user

    URL: /api/v1/auth/me/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get current user",
        description="Authenticated user with role and granted capabilities.",
        tags=["Auth"],
        responses={200: UserSerializer},
    )
    def get(self, request):
        return Response(UserSerializer(request.user).data)
