from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.exceptions import NotAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from registry.errors import RegistryError
from registry.serializers import (
    ConcatKeysQuerySerializer,
    CreateEntrySerializer,
    EntrySerializer,
    ErrorSerializer,
    FrozenSerializer,
    KeyCountSerializer,
    ModeratorSerializer,
    OwnerKeySerializer,
    OwnerKeysQuerySerializer,
    OwnerKeysResponseSerializer,
    PausedSerializer,
    RegistryStatusSerializer,
    TransferEntrySerializer,
    UpdateEntrySerializer,
)
from registry.services import (
    add_moderator,
    concat_keys,
    create_entry,
    delete_entry,
    get_entry,
    get_key_by_owner,
    get_key_count,
    get_registry_status,
    is_moderator,
    list_owner_keys,
    remove_moderator,
    set_key_frozen,
    set_paused,
    transfer_entry,
    update_entry,
)

CALLER_HEADER = "X-Caller"

CALLER_PARAMETER = OpenApiParameter(
    name=CALLER_HEADER,
    type=str,
    location=OpenApiParameter.HEADER,
    required=True,
    description="Already-authenticated identity of the caller",
)
KEY_PARAMETER = OpenApiParameter(
    name="key",
    type=str,
    location=OpenApiParameter.PATH,
    description="The registry key",
)
OWNER_PARAMETER = OpenApiParameter(
    name="owner",
    type=str,
    location=OpenApiParameter.PATH,
    description="Identity whose keys are enumerated",
)


def _error(description: str) -> OpenApiResponse:
    return OpenApiResponse(response=ErrorSerializer, description=description)


class RegistryAPIView(APIView):
    """Base view: reads the caller handle and renders engine rejections."""

    def get_caller(self, request) -> str:
        caller = request.headers.get(CALLER_HEADER)
        if not caller:
            raise NotAuthenticated(f"{CALLER_HEADER} header is required")
        return caller

    def get_authenticate_header(self, request):
        return CALLER_HEADER

    def handle_exception(self, exc):
        if isinstance(exc, RegistryError):
            return Response({"code": exc.code, "detail": exc.detail}, status=exc.status_code)
        return super().handle_exception(exc)


class EntryListView(RegistryAPIView):
    """Register new entries."""

    @extend_schema(
        operation_id="create_entry",
        summary="Create an entry",
        description="Register a new key owned by the caller. Version starts at 1. "
        "Rejected while the registry is paused, for every caller including the admin.",
        parameters=[CALLER_PARAMETER],
        request=CreateEntrySerializer,
        responses={
            201: OpenApiResponse(response=EntrySerializer, description="Entry created"),
            400: _error("Empty or oversized key, or oversized value"),
            401: OpenApiResponse(description="Missing caller header"),
            409: _error("Key already exists, or creation is paused"),
        },
        tags=["Entries"],
    )
    def post(self, request):
        caller = self.get_caller(request)
        serializer = CreateEntrySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = create_entry(
            caller,
            serializer.validated_data["key"],
            serializer.validated_data["value"],
        )
        return Response(EntrySerializer(entry).data, status=status.HTTP_201_CREATED)


class EntryDetailView(RegistryAPIView):
    """Read, update and delete a single entry."""

    @extend_schema(
        operation_id="get_entry",
        summary="Read an entry",
        description="Retrieve an entry with its owner, version and freeze flag. Reads are public.",
        parameters=[KEY_PARAMETER],
        responses={
            200: OpenApiResponse(response=EntrySerializer, description="The entry"),
            404: _error("Key not found"),
        },
        tags=["Entries"],
    )
    def get(self, request, key: str):
        return Response(EntrySerializer(get_entry(key)).data)

    @extend_schema(
        operation_id="update_entry",
        summary="Update an entry",
        description="Replace the value of an entry owned by the caller and increment its version.",
        parameters=[KEY_PARAMETER, CALLER_PARAMETER],
        request=UpdateEntrySerializer,
        responses={
            200: OpenApiResponse(response=EntrySerializer, description="Entry updated"),
            400: _error("Oversized value"),
            403: _error("Caller does not own the entry"),
            404: _error("Key not found"),
            423: _error("Entry is frozen"),
        },
        tags=["Entries"],
    )
    def put(self, request, key: str):
        caller = self.get_caller(request)
        serializer = UpdateEntrySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = update_entry(caller, key, serializer.validated_data["value"])
        return Response(EntrySerializer(entry).data)

    @extend_schema(
        operation_id="delete_entry",
        summary="Delete an entry",
        description="Remove an entry owned by the caller and drop it from the owner's index.",
        parameters=[KEY_PARAMETER, CALLER_PARAMETER],
        responses={
            204: OpenApiResponse(description="Entry deleted"),
            403: _error("Caller does not own the entry"),
            404: _error("Key not found"),
            423: _error("Entry is frozen"),
        },
        tags=["Entries"],
    )
    def delete(self, request, key: str):
        caller = self.get_caller(request)
        delete_entry(caller, key)
        return Response(status=status.HTTP_204_NO_CONTENT)


class EntryTransferView(RegistryAPIView):
    @extend_schema(
        operation_id="transfer_entry",
        summary="Transfer an entry",
        description="Hand ownership of an entry to another identity. Value and version are kept.",
        parameters=[KEY_PARAMETER, CALLER_PARAMETER],
        request=TransferEntrySerializer,
        responses={
            200: OpenApiResponse(response=EntrySerializer, description="Entry transferred"),
            400: _error("Empty new owner"),
            403: _error("Caller does not own the entry"),
            404: _error("Key not found"),
            423: _error("Entry is frozen"),
        },
        tags=["Entries"],
    )
    def post(self, request, key: str):
        caller = self.get_caller(request)
        serializer = TransferEntrySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = transfer_entry(caller, key, serializer.validated_data["new_owner"])
        return Response(EntrySerializer(entry).data)


class EntryFrozenView(RegistryAPIView):
    @extend_schema(
        operation_id="set_key_frozen",
        summary="Freeze or unfreeze an entry",
        description="Moderators only. A frozen entry rejects update, delete and transfer, "
        "including from its owner.",
        parameters=[KEY_PARAMETER, CALLER_PARAMETER],
        request=FrozenSerializer,
        responses={
            200: OpenApiResponse(response=EntrySerializer, description="Freeze flag set"),
            403: _error("Caller is not a moderator"),
            404: _error("Key not found"),
        },
        tags=["Moderation"],
    )
    def put(self, request, key: str):
        caller = self.get_caller(request)
        serializer = FrozenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = set_key_frozen(caller, key, serializer.validated_data["frozen"])
        return Response(EntrySerializer(entry).data)


class OwnerKeysView(RegistryAPIView):
    """Page through the keys an owner currently holds."""

    @extend_schema(
        operation_id="list_owner_keys",
        summary="List an owner's keys",
        description="Keys owned by an identity in index order, paginated by offset.",
        parameters=[
            OWNER_PARAMETER,
            OpenApiParameter(
                name="offset",
                type=int,
                location=OpenApiParameter.QUERY,
                description="Index of the first key to return (default: 0)",
                required=False,
            ),
            OpenApiParameter(
                name="limit",
                type=int,
                location=OpenApiParameter.QUERY,
                description="Maximum number of keys to return (default and max: 100)",
                required=False,
            ),
        ],
        responses={
            200: OpenApiResponse(response=OwnerKeysResponseSerializer, description="A page of keys"),
            400: OpenApiResponse(description="Invalid pagination parameters"),
        },
        tags=["Owners"],
    )
    def get(self, request, owner: str):
        query = OwnerKeysQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        keys, next_offset, has_more = list_owner_keys(
            owner,
            offset=query.validated_data["offset"],
            limit=query.validated_data.get("limit"),
        )

        response_data = {
            "owner": owner,
            "count": len(keys),
            "results": keys,
            "has_more": has_more,
        }
        if next_offset is not None:
            response_data["next_offset"] = next_offset

        return Response(response_data)


class OwnerKeyCountView(RegistryAPIView):
    @extend_schema(
        operation_id="get_key_count",
        summary="Count an owner's keys",
        description="Number of entries an identity owns. Zero for unknown identities.",
        parameters=[OWNER_PARAMETER],
        responses={200: KeyCountSerializer},
        tags=["Owners"],
    )
    def get(self, request, owner: str):
        return Response({"owner": owner, "count": get_key_count(owner)})


class OwnerKeyByIndexView(RegistryAPIView):
    @extend_schema(
        operation_id="get_key_by_owner",
        summary="Get an owner's key by index",
        parameters=[
            OWNER_PARAMETER,
            OpenApiParameter(
                name="index",
                type=int,
                location=OpenApiParameter.PATH,
                description="Position in the owner's index, below the owner's key count",
            ),
        ],
        responses={
            200: OwnerKeySerializer,
            404: _error("Index is beyond the owner's key count"),
        },
        tags=["Owners"],
    )
    def get(self, request, owner: str, index: int):
        key = get_key_by_owner(owner, index)
        return Response({"owner": owner, "index": index, "key": key})


class PausedView(RegistryAPIView):
    @extend_schema(
        operation_id="set_paused",
        summary="Pause or unpause entry creation",
        description="Admin only. Pausing blocks create_entry; every other call keeps working.",
        parameters=[CALLER_PARAMETER],
        request=PausedSerializer,
        responses={
            200: PausedSerializer,
            403: _error("Caller is not the admin"),
        },
        tags=["Administration"],
    )
    def put(self, request):
        caller = self.get_caller(request)
        serializer = PausedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        state = set_paused(caller, serializer.validated_data["paused"])
        return Response({"paused": state.paused})


class ModeratorListView(RegistryAPIView):
    @extend_schema(
        operation_id="add_moderator",
        summary="Add a moderator",
        description="Admin only. Adding an existing moderator is a no-op.",
        parameters=[CALLER_PARAMETER],
        request=ModeratorSerializer,
        responses={
            201: ModeratorSerializer,
            400: _error("Empty identity"),
            403: _error("Caller is not the admin"),
        },
        tags=["Administration"],
    )
    def post(self, request):
        caller = self.get_caller(request)
        serializer = ModeratorSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        moderator = add_moderator(caller, serializer.validated_data["identity"])
        return Response({"identity": moderator.identity}, status=status.HTTP_201_CREATED)


class ModeratorDetailView(RegistryAPIView):
    @extend_schema(
        operation_id="remove_moderator",
        summary="Remove a moderator",
        description="Admin only. Removing an identity that is not a moderator is a no-op.",
        parameters=[CALLER_PARAMETER],
        responses={
            204: OpenApiResponse(description="Moderator removed"),
            403: _error("Caller is not the admin"),
        },
        tags=["Administration"],
    )
    def delete(self, request, identity: str):
        caller = self.get_caller(request)
        remove_moderator(caller, identity)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ModeratorCheckView(RegistryAPIView):
    @extend_schema(
        operation_id="is_moderator",
        summary="Check moderator status",
        responses={200: OpenApiResponse(description="Whether the identity is a moderator")},
        tags=["Moderation"],
    )
    def get(self, request, identity: str):
        return Response({"identity": identity, "moderator": is_moderator(identity)})


class ConcatKeysView(RegistryAPIView):
    @extend_schema(
        operation_id="concat_keys",
        summary="Build a namespaced key",
        description="Join two key parts with ':' (e.g. 'hotline' and 'region1' give 'hotline:region1').",
        parameters=[
            OpenApiParameter(name="a", type=str, location=OpenApiParameter.QUERY, required=True),
            OpenApiParameter(name="b", type=str, location=OpenApiParameter.QUERY, required=True),
        ],
        responses={
            200: OpenApiResponse(description="The joined key"),
            400: _error("Empty part or joined key too long"),
        },
        tags=["Helpers"],
    )
    def get(self, request):
        query = ConcatKeysQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        key = concat_keys(query.validated_data["a"], query.validated_data["b"])
        return Response({"key": key})


class StatusView(RegistryAPIView):
    """Registry status: admin, pause flag, sequence and moderators."""

    @extend_schema(
        operation_id="registry_status",
        summary="Registry status",
        responses={200: RegistryStatusSerializer},
        tags=["Administration"],
    )
    def get(self, request):
        return Response(get_registry_status(), status=status.HTTP_200_OK)
