import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="RegistryState",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("admin", models.CharField(max_length=255)),
                ("paused", models.BooleanField(default=False)),
                ("sequence", models.PositiveBigIntegerField(default=0)),
            ],
        ),
        migrations.CreateModel(
            name="Entry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=255, unique=True)),
                ("value", models.TextField(blank=True)),
                ("owner", models.CharField(db_index=True, max_length=255)),
                ("version", models.PositiveIntegerField(default=1)),
                ("frozen", models.BooleanField(default=False)),
                ("created_at", models.PositiveBigIntegerField()),
                ("updated_at", models.PositiveBigIntegerField()),
            ],
            options={
                "ordering": ["key"],
                "verbose_name_plural": "entries",
                "constraints": [
                    models.CheckConstraint(condition=models.Q(version__gte=1), name="entry_version_positive"),
                    models.CheckConstraint(
                        condition=models.Q(updated_at__gte=models.F("created_at")),
                        name="entry_updated_after_created",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Moderator",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("identity", models.CharField(max_length=255, unique=True)),
                ("added_at", models.PositiveBigIntegerField()),
            ],
            options={
                "ordering": ["identity"],
            },
        ),
        migrations.CreateModel(
            name="OwnerKey",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("owner", models.CharField(max_length=255)),
                ("position", models.PositiveIntegerField()),
                (
                    "entry",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="slot",
                        to="registry.entry",
                    ),
                ),
            ],
            options={
                "ordering": ["owner", "position"],
                "constraints": [
                    models.UniqueConstraint(fields=["owner", "position"], name="owner_position_unique"),
                ],
            },
        ),
    ]
