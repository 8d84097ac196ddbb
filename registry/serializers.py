from rest_framework import serializers

from registry.models import Entry
from registry.services import MAX_PAGE_SIZE


class EntrySerializer(serializers.ModelSerializer):
    """Serializer for registry entries with ownership and version metadata."""

    class Meta:
        model = Entry
        fields = [
            "key",
            "value",
            "owner",
            "version",
            "frozen",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


# Length and emptiness checks on keys and values are left to the engine so
# that they surface as invalid_argument rather than as field errors.


class CreateEntrySerializer(serializers.Serializer):
    key = serializers.CharField(
        allow_blank=True,
        trim_whitespace=False,
        help_text="The key to register. Must be non-empty and globally unique.",
    )
    value = serializers.CharField(
        allow_blank=True,
        trim_whitespace=False,
        help_text="The value to store for the key. Can be empty string.",
    )


class UpdateEntrySerializer(serializers.Serializer):
    value = serializers.CharField(
        allow_blank=True,
        trim_whitespace=False,
        help_text="The new value. Replaces the current value and bumps the version.",
    )


class TransferEntrySerializer(serializers.Serializer):
    new_owner = serializers.CharField(
        allow_blank=True,
        help_text="Identity that takes over ownership of the entry",
    )


class FrozenSerializer(serializers.Serializer):
    frozen = serializers.BooleanField(help_text="True to freeze the entry, false to unfreeze it")


class PausedSerializer(serializers.Serializer):
    paused = serializers.BooleanField(help_text="True to block new entries, false to allow them")


class ModeratorSerializer(serializers.Serializer):
    identity = serializers.CharField(
        allow_blank=True,
        help_text="Identity granted freeze/unfreeze authority",
    )


class OwnerKeysQuerySerializer(serializers.Serializer):
    offset = serializers.IntegerField(required=False, default=0, min_value=0)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=MAX_PAGE_SIZE)


class OwnerKeysResponseSerializer(serializers.Serializer):
    """Serializer for owner key listings with pagination support."""

    owner = serializers.CharField()
    count = serializers.IntegerField(help_text="Number of keys returned in this page")
    results = serializers.ListField(child=serializers.CharField(), help_text="Keys in index order")
    has_more = serializers.BooleanField(
        help_text="Whether there are more keys beyond this page"
    )
    next_offset = serializers.IntegerField(
        required=False,
        allow_null=True,
        help_text="Offset to use for fetching the next page",
    )


class KeyCountSerializer(serializers.Serializer):
    owner = serializers.CharField()
    count = serializers.IntegerField()


class OwnerKeySerializer(serializers.Serializer):
    owner = serializers.CharField()
    index = serializers.IntegerField()
    key = serializers.CharField()


class ConcatKeysQuerySerializer(serializers.Serializer):
    a = serializers.CharField(allow_blank=True)
    b = serializers.CharField(allow_blank=True)


class RegistryStatusSerializer(serializers.Serializer):
    admin = serializers.CharField()
    paused = serializers.BooleanField()
    sequence = serializers.IntegerField()
    entry_count = serializers.IntegerField()
    moderators = serializers.ListField(child=serializers.CharField())
    max_key_length = serializers.IntegerField()
    max_value_length = serializers.IntegerField()


class ErrorSerializer(serializers.Serializer):
    code = serializers.CharField()
    detail = serializers.CharField()
