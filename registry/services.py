import logging
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured
from django.db import transaction

from registry.errors import (
    AlreadyPaused,
    DuplicateKey,
    Forbidden,
    Frozen,
    InvalidArgument,
    NotFound,
    OutOfRange,
)
from registry.models import Entry, Moderator, OwnerKey, RegistryState

logger = logging.getLogger(__name__)

# Cache settings
CACHE_TIMEOUT = 300  # 5 minutes
CACHE_KEY_PREFIX = "registry:entry:"

# Owner listing limits
MAX_PAGE_SIZE = 100

KEY_SEPARATOR = ":"

# Matches the CharField bound of identity columns
MAX_IDENTITY_LENGTH = 255


def _get_cache_key(key: str) -> str:
    """Generate cache key for a given registry key."""
    return f"{CACHE_KEY_PREFIX}{key}"


def _invalidate_cached_entry(key: str) -> None:
    """
    Drop the cached entry now and again once the write commits, so a copy
    of the old row cached by another reader mid-transaction does not outlive
    the commit.
    """
    cache_key = _get_cache_key(key)
    cache.delete(cache_key)
    transaction.on_commit(lambda: cache.delete(cache_key))


def max_key_length() -> int:
    limit = settings.REGISTRY_MAX_KEY_LENGTH
    column_limit = Entry._meta.get_field("key").max_length
    if limit > column_limit:
        raise ImproperlyConfigured(
            f"REGISTRY_MAX_KEY_LENGTH ({limit}) exceeds the key column length ({column_limit})"
        )
    return limit


def max_value_length() -> int:
    return settings.REGISTRY_MAX_VALUE_LENGTH


def _validate_key(key: Any) -> None:
    if not isinstance(key, str) or not key:
        raise InvalidArgument("key must be a non-empty string")
    if len(key) > max_key_length():
        raise InvalidArgument(f"key exceeds {max_key_length()} characters")


def _validate_value(value: Any) -> None:
    if not isinstance(value, str):
        raise InvalidArgument("value must be a string")
    if len(value) > max_value_length():
        raise InvalidArgument(f"value exceeds {max_value_length()} characters")


def _validate_identity(identity: Any, name: str = "identity") -> None:
    if not isinstance(identity, str) or not identity:
        raise InvalidArgument(f"{name} must be a non-empty string")
    if len(identity) > MAX_IDENTITY_LENGTH:
        raise InvalidArgument(f"{name} exceeds {MAX_IDENTITY_LENGTH} characters")


# ----------------------------------------------------------------------
# State row and sequence markers
# ----------------------------------------------------------------------


def initialize_registry(admin: str) -> Tuple[RegistryState, bool]:
    """
    Fix the admin identity of the registry.

    Calling it again with the same admin is a no-op; the admin can never be
    reassigned once set.

    Returns:
        Tuple of (state, created)

    Raises:
        InvalidArgument: If ``admin`` is empty
        Forbidden: If the registry already has a different admin
    """
    _validate_identity(admin, "admin")
    with transaction.atomic():
        state = (
            RegistryState.objects.select_for_update()
            .filter(pk=RegistryState.SINGLETON_ID)
            .first()
        )
        if state is None:
            state = RegistryState.objects.create(pk=RegistryState.SINGLETON_ID, admin=admin)
            logger.info(f"Registry initialized with admin {admin}")
            return state, True
        if state.admin != admin:
            raise Forbidden(f"registry admin is already fixed to {state.admin}")
        return state, False


def _load_state(lock: bool = False) -> RegistryState:
    """
    Return the singleton state row, creating it from ``REGISTRY_ADMIN`` if the
    registry was never initialized. With ``lock`` the row is selected for
    update, which serializes every mutating call behind it.
    """
    queryset = RegistryState.objects.select_for_update() if lock else RegistryState.objects.all()
    try:
        return queryset.get(pk=RegistryState.SINGLETON_ID)
    except RegistryState.DoesNotExist:
        pass

    admin = getattr(settings, "REGISTRY_ADMIN", "")
    if not admin:
        raise ImproperlyConfigured("REGISTRY_ADMIN must be set before the registry is used")
    state, created = RegistryState.objects.get_or_create(
        pk=RegistryState.SINGLETON_ID, defaults={"admin": admin}
    )
    if created:
        logger.info(f"Registry initialized from settings with admin {admin}")
    if lock:
        state = RegistryState.objects.select_for_update().get(pk=RegistryState.SINGLETON_ID)
    return state


def _next_sequence(state: RegistryState) -> int:
    state.sequence += 1
    state.save(update_fields=["sequence"])
    return state.sequence


# ----------------------------------------------------------------------
# Owner index
# ----------------------------------------------------------------------


def _append_slot(entry: Entry, owner: str) -> OwnerKey:
    position = OwnerKey.objects.filter(owner=owner).count()
    return OwnerKey.objects.create(owner=owner, position=position, entry=entry)


def _remove_slot(entry: Entry) -> None:
    """
    Drop the entry's slot from its owner's index.

    The owner's last slot moves into the vacated position, so positions stay
    dense (0..count-1) and every other slot keeps its index.
    """
    slot = OwnerKey.objects.get(entry=entry)
    vacated_position = slot.position
    last = OwnerKey.objects.filter(owner=slot.owner).order_by("-position").first()
    moves_last = last.pk != slot.pk
    slot.delete()
    if moves_last:
        last.position = vacated_position
        last.save(update_fields=["position"])


# ----------------------------------------------------------------------
# Entries
# ----------------------------------------------------------------------


def _get_for_mutation(key: str, caller: str) -> Entry:
    """Fetch an entry the caller wants to change, applying owner and freeze checks."""
    entry = Entry.objects.filter(key=key).first()
    if entry is None:
        raise NotFound(f"no entry for key {key!r}")
    if entry.owner != caller:
        logger.warning(f"Rejected change to {key} by {caller}: owned by {entry.owner}")
        raise Forbidden(f"{caller} does not own {key!r}")
    if entry.frozen:
        logger.warning(f"Rejected change to frozen key {key} by {caller}")
        raise Frozen(f"entry {key!r} is frozen")
    return entry


def create_entry(caller: str, key: str, value: str) -> Entry:
    """
    Register a new key owned by ``caller``.

    Raises:
        InvalidArgument: Empty or oversized key, or oversized value
        AlreadyPaused: Creation is paused by the admin
        DuplicateKey: The key is already registered
    """
    _validate_identity(caller, "caller")
    _validate_key(key)
    _validate_value(value)

    with transaction.atomic():
        state = _load_state(lock=True)
        if state.paused:
            raise AlreadyPaused()
        if Entry.objects.filter(key=key).exists():
            raise DuplicateKey(f"key {key!r} already exists")

        marker = _next_sequence(state)
        entry = Entry.objects.create(
            key=key,
            value=value,
            owner=caller,
            version=1,
            frozen=False,
            created_at=marker,
            updated_at=marker,
        )
        _append_slot(entry, caller)
        _invalidate_cached_entry(key)

    logger.info(f"Created {key} for {caller} at seq {marker}")
    return entry


def get_entry(key: str) -> Entry:
    """
    Read an entry, served from the cache when the key is hot.
    Reads are public; no caller is involved.
    """
    cache_key = _get_cache_key(key)
    cached_entry = cache.get(cache_key)
    if cached_entry is not None:
        logger.debug(f"Cache hit for {key}")
        return cached_entry

    try:
        entry = Entry.objects.get(key=key)
    except Entry.DoesNotExist as exc:
        raise NotFound(f"no entry for key {key!r}") from exc

    # Only committed rows may be cached; a rollback discards the callback.
    transaction.on_commit(lambda: cache.set(cache_key, entry, CACHE_TIMEOUT))
    return entry


def update_entry(caller: str, key: str, new_value: str) -> Entry:
    """
    Replace the value of an owned, unfrozen entry and bump its version.

    Raises:
        NotFound, Forbidden, Frozen: Checked in this order
        InvalidArgument: The new value is too long
    """
    with transaction.atomic():
        state = _load_state(lock=True)
        entry = _get_for_mutation(key, caller)
        _validate_value(new_value)

        entry.value = new_value
        entry.version += 1
        entry.updated_at = _next_sequence(state)
        entry.save(update_fields=["value", "version", "updated_at"])
        _invalidate_cached_entry(key)

    logger.info(f"Updated {key} to v{entry.version}")
    return entry


def delete_entry(caller: str, key: str) -> None:
    with transaction.atomic():
        state = _load_state(lock=True)
        entry = _get_for_mutation(key, caller)

        _remove_slot(entry)
        entry.delete()
        _next_sequence(state)
        _invalidate_cached_entry(key)

    logger.info(f"Deleted {key} owned by {caller}")


def transfer_entry(caller: str, key: str, new_owner: str) -> Entry:
    """
    Hand an entry over to ``new_owner``. Value and version are kept; the key
    moves to the end of the new owner's index.
    """
    _validate_identity(new_owner, "new_owner")

    with transaction.atomic():
        state = _load_state(lock=True)
        entry = _get_for_mutation(key, caller)

        _remove_slot(entry)
        entry.owner = new_owner
        entry.updated_at = _next_sequence(state)
        entry.save(update_fields=["owner", "updated_at"])
        _append_slot(entry, new_owner)
        _invalidate_cached_entry(key)

    logger.info(f"Transferred {key} from {caller} to {new_owner}")
    return entry


# ----------------------------------------------------------------------
# Administration and moderation
# ----------------------------------------------------------------------


def _require_admin(state: RegistryState, caller: str) -> None:
    if caller != state.admin:
        logger.warning(f"Rejected admin call from {caller}")
        raise Forbidden(f"{caller} is not the registry admin")


def set_paused(caller: str, value: bool) -> RegistryState:
    """Toggle the global pause flag. Pausing blocks only new entries."""
    with transaction.atomic():
        state = _load_state(lock=True)
        _require_admin(state, caller)
        state.paused = bool(value)
        state.sequence += 1
        state.save(update_fields=["paused", "sequence"])

    logger.info(f"Registry {'paused' if state.paused else 'unpaused'} by {caller}")
    return state


def add_moderator(caller: str, identity: str) -> Moderator:
    with transaction.atomic():
        state = _load_state(lock=True)
        _require_admin(state, caller)
        _validate_identity(identity)

        moderator = Moderator.objects.filter(identity=identity).first()
        if moderator is not None:
            return moderator
        moderator = Moderator.objects.create(identity=identity, added_at=_next_sequence(state))

    logger.info(f"Added moderator {identity}")
    return moderator


def remove_moderator(caller: str, identity: str) -> None:
    with transaction.atomic():
        state = _load_state(lock=True)
        _require_admin(state, caller)

        deleted, _ = Moderator.objects.filter(identity=identity).delete()
        if not deleted:
            return
        _next_sequence(state)

    logger.info(f"Removed moderator {identity}")


def is_moderator(identity: str) -> bool:
    return Moderator.objects.filter(identity=identity).exists()


def set_key_frozen(caller: str, key: str, value: bool) -> Entry:
    """
    Freeze or unfreeze an entry. Only moderators may do this, whoever owns
    the entry; version and updated_at are left untouched.

    Raises:
        NotFound: The key is absent
        Forbidden: The caller is not a moderator
    """
    with transaction.atomic():
        state = _load_state(lock=True)
        entry = Entry.objects.filter(key=key).first()
        if entry is None:
            raise NotFound(f"no entry for key {key!r}")
        if not Moderator.objects.filter(identity=caller).exists():
            logger.warning(f"Rejected freeze of {key} by non-moderator {caller}")
            raise Forbidden(f"{caller} is not a moderator")

        entry.frozen = bool(value)
        entry.save(update_fields=["frozen"])
        _next_sequence(state)
        _invalidate_cached_entry(key)

    logger.info(f"Key {key} {'frozen' if entry.frozen else 'unfrozen'} by {caller}")
    return entry


# ----------------------------------------------------------------------
# Owner enumeration
# ----------------------------------------------------------------------


def get_key_count(owner: str) -> int:
    return OwnerKey.objects.filter(owner=owner).count()


def get_key_by_owner(owner: str, index: int) -> str:
    """
    Return the key at ``index`` of the owner's index.

    Raises:
        OutOfRange: If ``index`` is negative or not below the owner's key count
    """
    slot = None
    if index >= 0:
        slot = (
            OwnerKey.objects.filter(owner=owner, position=index)
            .select_related("entry")
            .first()
        )
    if slot is None:
        count = get_key_count(owner)
        raise OutOfRange(f"{owner} owns {count} keys; index {index} is out of range")
    return slot.entry.key


def list_owner_keys(
    owner: str,
    offset: int = 0,
    limit: Optional[int] = None,
) -> Tuple[List[str], Optional[int], bool]:
    """
    Page through an owner's keys in index order.

    Args:
        owner: Identity whose keys to list
        offset: Index of the first key to return
        limit: Maximum number of keys to return (default and cap: MAX_PAGE_SIZE)

    Returns:
        Tuple of (keys, next_offset, has_more)
        - keys: Keys in index order
        - next_offset: Offset of the next page (None if no more results)
        - has_more: Whether there are more keys beyond this page
    """
    if offset < 0:
        raise InvalidArgument("offset must not be negative")
    if limit is None:
        limit = MAX_PAGE_SIZE
    elif limit < 1:
        raise InvalidArgument("limit must be positive")
    else:
        limit = min(limit, MAX_PAGE_SIZE)

    slots = (
        OwnerKey.objects.filter(owner=owner, position__gte=offset)
        .select_related("entry")
        .order_by("position")[: limit + 1]  # Fetch one extra to check if there's more
    )
    keys = [slot.entry.key for slot in slots]

    if len(keys) > limit:
        return keys[:limit], offset + limit, True
    return keys, None, False


# ----------------------------------------------------------------------
# Status and helpers
# ----------------------------------------------------------------------


def get_registry_status() -> Dict[str, Any]:
    state = _load_state()
    return {
        "admin": state.admin,
        "paused": state.paused,
        "sequence": state.sequence,
        "entry_count": Entry.objects.count(),
        "moderators": list(Moderator.objects.values_list("identity", flat=True)),
        "max_key_length": max_key_length(),
        "max_value_length": max_value_length(),
    }


def concat_keys(*parts: str) -> str:
    """
    Join namespace parts into one registry key, e.g.
    ``concat_keys("hotline", "region1") == "hotline:region1"``.
    """
    if len(parts) < 2:
        raise InvalidArgument("at least two key parts are required")
    for part in parts:
        if not isinstance(part, str) or not part:
            raise InvalidArgument("key parts must be non-empty strings")
    key = KEY_SEPARATOR.join(parts)
    if len(key) > max_key_length():
        raise InvalidArgument(f"joined key exceeds {max_key_length()} characters")
    return key
