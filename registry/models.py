from django.db import models


class RegistryState(models.Model):
    """Singleton row holding the admin, the pause flag and the sequence counter."""

    SINGLETON_ID = 1

    admin = models.CharField(max_length=255)
    paused = models.BooleanField(default=False)
    sequence = models.PositiveBigIntegerField(default=0)

    def __str__(self) -> str:
        flag = "paused" if self.paused else "active"
        return f"registry admin={self.admin} ({flag}, seq {self.sequence})"


class Entry(models.Model):
    """Represents one registered key/value record."""

    key = models.CharField(max_length=255, unique=True)
    value = models.TextField(blank=True)
    owner = models.CharField(max_length=255, db_index=True)
    version = models.PositiveIntegerField(default=1)
    frozen = models.BooleanField(default=False)
    created_at = models.PositiveBigIntegerField()
    updated_at = models.PositiveBigIntegerField()

    class Meta:
        ordering = ["key"]
        verbose_name_plural = "entries"
        constraints = [
            models.CheckConstraint(condition=models.Q(version__gte=1), name="entry_version_positive"),
            models.CheckConstraint(
                condition=models.Q(updated_at__gte=models.F("created_at")),
                name="entry_updated_after_created",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.key} (v{self.version}, owner {self.owner})"


class OwnerKey(models.Model):
    """One slot of an owner's index: the entry at ``position`` for ``owner``."""

    owner = models.CharField(max_length=255)
    position = models.PositiveIntegerField()
    entry = models.OneToOneField(Entry, on_delete=models.CASCADE, related_name="slot")

    class Meta:
        ordering = ["owner", "position"]
        constraints = [
            models.UniqueConstraint(fields=["owner", "position"], name="owner_position_unique"),
        ]

    def __str__(self) -> str:
        return f"{self.owner}[{self.position}]"


class Moderator(models.Model):
    identity = models.CharField(max_length=255, unique=True)
    added_at = models.PositiveBigIntegerField()

    class Meta:
        ordering = ["identity"]

    def __str__(self) -> str:
        return self.identity
