from django.urls import path

from registry.views import (
    ConcatKeysView,
    EntryDetailView,
    EntryFrozenView,
    EntryListView,
    EntryTransferView,
    ModeratorCheckView,
    ModeratorDetailView,
    ModeratorListView,
    OwnerKeyByIndexView,
    OwnerKeyCountView,
    OwnerKeysView,
    PausedView,
    StatusView,
)

app_name = "registry"

urlpatterns = [
    path("entries/", EntryListView.as_view(), name="entry-list"),
    path("entries/<str:key>/", EntryDetailView.as_view(), name="entry-detail"),
    path("entries/<str:key>/transfer/", EntryTransferView.as_view(), name="entry-transfer"),
    path("entries/<str:key>/frozen/", EntryFrozenView.as_view(), name="entry-frozen"),
    path("owners/<str:owner>/keys/", OwnerKeysView.as_view(), name="owner-keys"),
    path("owners/<str:owner>/keys/count/", OwnerKeyCountView.as_view(), name="owner-key-count"),
    path("owners/<str:owner>/keys/<int:index>/", OwnerKeyByIndexView.as_view(), name="owner-key"),
    path("admin/paused/", PausedView.as_view(), name="paused"),
    path("admin/moderators/", ModeratorListView.as_view(), name="moderator-list"),
    path("admin/moderators/<str:identity>/", ModeratorDetailView.as_view(), name="moderator-detail"),
    path("moderators/<str:identity>/", ModeratorCheckView.as_view(), name="moderator-check"),
    path("keys/concat/", ConcatKeysView.as_view(), name="concat-keys"),
    path("status/", StatusView.as_view(), name="status"),
]
