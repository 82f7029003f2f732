"""
ViewSets for chat API.

This module provides REST API endpoints for the messaging core:
- ConversationViewSet: Direct conversation list, get-or-create, read marker
- MessageViewSet: History, send, edit and delete in a direct conversation
- GroupMessageViewSet: History and send in a squad group channel

URL Structure:
    /api/v1/chat/conversations/                          GET, POST
    /api/v1/chat/conversations/{id}/                     GET
    /api/v1/chat/conversations/{id}/read/                POST
    /api/v1/chat/conversations/{id}/messages/            GET, POST
    /api/v1/chat/conversations/{id}/messages/{pk}/       DELETE
    /api/v1/chat/conversations/{id}/messages/{pk}/edit/  PATCH
    /api/v1/chat/groups/{group_id}/messages/             GET, POST

Design Decisions:
    - Views are thin: every rule lives in chat.services / chat.access
    - Service error codes map to HTTP status through error_response()
    - History uses backward keyset cursors (?before=&before_id=&page_size=)
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from chat.channel_ref import ChannelRef
from chat.exceptions import ERROR_CODE_MAP, AccessDenied, Forbidden, NotFound
from chat.models import Message
from chat.realtime import message_payload
from chat.serializers import (
    ConversationCreateSerializer,
    ConversationSummarySerializer,
    MessageCreateSerializer,
    MessageEditSerializer,
    MessagePageQuerySerializer,
    MessageSerializer,
    serialize_page,
)
from chat.services import ConversationService, MessageService

HISTORY_PARAMETERS = [
    OpenApiParameter("before", OpenApiTypes.DATETIME, description="Exclusive upper bound on created_at"),
    OpenApiParameter("before_id", OpenApiTypes.INT, description="Tiebreak id for the before timestamp"),
    OpenApiParameter("page_size", OpenApiTypes.INT, description="Messages per page"),
]


def error_status(error_code: str | None) -> int:
    """HTTP status for a service error code."""
    exc_class = ERROR_CODE_MAP.get(error_code or "")
    if exc_class is None:
        return status.HTTP_400_BAD_REQUEST
    if issubclass(exc_class, NotFound):
        return status.HTTP_404_NOT_FOUND
    if issubclass(exc_class, (AccessDenied, Forbidden)):
        return status.HTTP_403_FORBIDDEN
    return status.HTTP_400_BAD_REQUEST


def error_response(result) -> Response:
    return Response(
        {"error": result.error, "error_code": result.error_code},
        status=error_status(result.error_code),
    )


def message_response(message, status_code=status.HTTP_200_OK) -> Response:
    """Stored message in the same wire shape the realtime events carry."""
    return Response(message_payload(message), status=status_code)


class ChannelHistoryMixin:
    """History and send for any channel kind; subclasses provide get_channel()."""

    def get_channel(self) -> ChannelRef:
        raise NotImplementedError

    def list(self, request, *args, **kwargs):
        """Backward history page, ascending within the page."""
        query = MessagePageQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        result = MessageService.fetch_page(
            self.get_channel(),
            request.user,
            before=query.validated_data.get("before"),
            before_id=query.validated_data.get("before_id"),
            page_size=query.validated_data.get("page_size"),
        )
        if not result.success:
            return error_response(result)

        return Response(serialize_page(result.data))

    def create(self, request, *args, **kwargs):
        """Send a message; the response carries the stored record."""
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        client_id = serializer.validated_data.get("client_id")
        result = MessageService.send_message(
            self.get_channel(),
            request.user,
            serializer.validated_data["content"],
            image_url=serializer.validated_data.get("image_url"),
            client_id=client_id,
        )
        if not result.success:
            return error_response(result)

        response = message_response(result.data, status.HTTP_201_CREATED)
        if client_id:
            response.data["client_id"] = client_id
        return response


@extend_schema_view(
    list=extend_schema(
        operation_id="list_conversations",
        summary="List conversations",
        responses=ConversationSummarySerializer(many=True),
        tags=["Chat - Conversations"],
    ),
    create=extend_schema(
        operation_id="open_conversation",
        summary="Get or create direct conversation",
        request=ConversationCreateSerializer,
        responses={
            200: ConversationSummarySerializer,
            400: OpenApiResponse(description="Same user"),
            404: OpenApiResponse(description="User not found"),
        },
        tags=["Chat - Conversations"],
    ),
    retrieve=extend_schema(
        operation_id="get_conversation",
        summary="Get conversation",
        responses=ConversationSummarySerializer,
        tags=["Chat - Conversations"],
    ),
)
class ConversationViewSet(viewsets.ViewSet):
    """
    ViewSet for the user's direct conversations.

    list:
        Conversations the user takes part in, most recent activity first,
        with the other participant, last message and unread count.

    create:
        Open the direct conversation with user_id, creating it on first use.
        Both users get the same conversation whoever opens it first.

    retrieve:
        One conversation summary.

    read:
        Move the user's read marker to now.
    """

    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def list(self, request):
        summaries = ConversationService.list_conversations(request.user)
        return Response(ConversationSummarySerializer(summaries, many=True).data)

    def create(self, request):
        serializer = ConversationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ConversationService.get_or_create_direct(
            request.user,
            serializer.validated_data["user_id"],
        )
        if not result.success:
            return error_response(result)

        summary = ConversationService.summarize(result.data, request.user)
        return Response(ConversationSummarySerializer(summary).data)

    def retrieve(self, request, pk=None):
        result = ConversationService.get_conversation_for_user(int(pk), request.user)
        if not result.success:
            return error_response(result)

        summary = ConversationService.summarize(result.data, request.user)
        return Response(ConversationSummarySerializer(summary).data)

    @extend_schema(
        operation_id="mark_conversation_read",
        summary="Mark conversation as read",
        request=None,
        responses={200: OpenApiResponse(description="Read marker updated")},
        tags=["Chat - Conversations"],
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        result = ConversationService.get_conversation_for_user(int(pk), request.user)
        if not result.success:
            return error_response(result)

        result = ConversationService.mark_read(result.data, request.user)
        if not result.success:
            return error_response(result)

        return Response({"last_read_at": result.data.last_read_at, "unread_count": 0})


@extend_schema_view(
    list=extend_schema(
        operation_id="list_conversation_messages",
        summary="Conversation history",
        parameters=HISTORY_PARAMETERS,
        tags=["Chat - Messages"],
    ),
    create=extend_schema(
        operation_id="send_conversation_message",
        summary="Send message",
        request=MessageCreateSerializer,
        responses={201: MessageSerializer},
        tags=["Chat - Messages"],
    ),
    destroy=extend_schema(
        operation_id="delete_message",
        summary="Delete message",
        responses={204: None, 403: OpenApiResponse(description="Not the author")},
        tags=["Chat - Messages"],
    ),
)
class MessageViewSet(ChannelHistoryMixin, viewsets.ViewSet):
    """
    ViewSet for messages in a direct conversation.

    list:
        History page. Soft-deleted messages are included with placeholder content.

    create:
        Send a message. Only the two participants may post.

    edit:
        Replace the content of your own message.

    destroy:
        Soft delete your own message.
    """

    permission_classes = [IsAuthenticated]

    def get_channel(self) -> ChannelRef:
        return ChannelRef.direct(self.kwargs["conversation_pk"])

    def _in_conversation(self, message) -> bool:
        return message.conversation_id == int(self.kwargs["conversation_pk"])

    def _not_found(self) -> Response:
        return Response(
            {"error": "Message not found", "error_code": "MESSAGE_NOT_FOUND"},
            status=status.HTTP_404_NOT_FOUND,
        )

    def _message_in_conversation(self, pk):
        message = Message.objects.filter(id=pk, is_deleted=False).first()
        if message is None or not self._in_conversation(message):
            return None
        return message

    def destroy(self, request, conversation_pk=None, pk=None):
        if self._message_in_conversation(pk) is None:
            return self._not_found()

        result = MessageService.delete_message(request.user, int(pk))
        if not result.success:
            return error_response(result)

        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        operation_id="edit_message",
        summary="Edit message",
        request=MessageEditSerializer,
        responses={200: MessageSerializer, 403: OpenApiResponse(description="Not the author")},
        tags=["Chat - Messages"],
    )
    def edit(self, request, conversation_pk=None, pk=None):
        serializer = MessageEditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        if self._message_in_conversation(pk) is None:
            return self._not_found()

        result = MessageService.edit_message(
            request.user,
            int(pk),
            serializer.validated_data["content"],
        )
        if not result.success:
            return error_response(result)

        return message_response(result.data)


@extend_schema_view(
    list=extend_schema(
        operation_id="list_group_messages",
        summary="Group channel history",
        parameters=HISTORY_PARAMETERS,
        tags=["Chat - Groups"],
    ),
    create=extend_schema(
        operation_id="send_group_message",
        summary="Send group message",
        request=MessageCreateSerializer,
        responses={201: MessageSerializer},
        tags=["Chat - Groups"],
    ),
)
class GroupMessageViewSet(ChannelHistoryMixin, viewsets.ViewSet):
    """
    ViewSet for a squad's group channel.

    Public squads can be read by anyone signed in; posting needs an
    active membership (or being the squad's creator).
    """

    permission_classes = [IsAuthenticated]

    def get_channel(self) -> ChannelRef:
        return ChannelRef.group(self.kwargs["group_pk"])
