"""Property-based tests for listing expansion invariants."""

from __future__ import annotations

import string
from datetime import UTC, datetime

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from objcatalog.models.catalog import ObjectType
from objcatalog.remote.base import RemoteObject
from objcatalog.services.paths import ancestor_folders, split_path
from objcatalog.services.sync_service import expand_listing

PROPERTY_SETTINGS = settings(
    max_examples=250,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

_SEGMENT = st.text(alphabet=string.ascii_lowercase + string.digits, min_size=1, max_size=4)
_FILE_KEY = st.builds(
    lambda parts, ext: "/".join(parts) + f".{ext}",
    st.lists(_SEGMENT, min_size=1, max_size=4),
    st.sampled_from(["txt", "png", "csv"]),
)
_FOLDER_KEY = st.builds(
    lambda parts: "/".join(parts) + "/",
    st.lists(_SEGMENT, min_size=1, max_size=4),
)
_KEYS = st.lists(st.one_of(_FILE_KEY, _FOLDER_KEY), max_size=25, unique=True)

MARKER_MTIME = datetime(2023, 7, 4, tzinfo=UTC)


def _listing(keys: list[str]) -> list[RemoteObject]:
    """Remote listings come back in lexicographic key order."""
    return [
        RemoteObject(
            key=key,
            size=0 if key.endswith("/") else len(key),
            last_modified=MARKER_MTIME if key.endswith("/") else None,
            storage_class="GLACIER" if key.endswith("/") else None,
        )
        for key in sorted(keys)
    ]


class TestExpandListingProperties:
    @PROPERTY_SETTINGS
    @given(keys=_KEYS)
    def test_prefix_closed(self, keys: list[str]) -> None:
        paths = {entry.path for entry in expand_listing(1, _listing(keys))}
        for path in paths:
            for folder in ancestor_folders(path):
                assert folder in paths

    @PROPERTY_SETTINGS
    @given(keys=_KEYS)
    def test_paths_unique_and_listed_keys_kept(self, keys: list[str]) -> None:
        paths = [entry.path for entry in expand_listing(1, _listing(keys))]
        assert len(paths) == len(set(paths))
        assert set(keys) <= set(paths)

    @PROPERTY_SETTINGS
    @given(keys=_KEYS)
    def test_explicit_markers_keep_their_metadata(self, keys: list[str]) -> None:
        by_path = {entry.path: entry for entry in expand_listing(1, _listing(keys))}
        for key in keys:
            if key.endswith("/"):
                assert by_path[key].storage_class == "GLACIER"
                assert by_path[key].last_modified == MARKER_MTIME

    @PROPERTY_SETTINGS
    @given(keys=_KEYS)
    def test_derived_fields_consistent(self, keys: list[str]) -> None:
        for entry in expand_listing(1, _listing(keys)):
            assert (entry.dirname, entry.basename) == split_path(entry.path)
            is_folder = entry.path.endswith("/")
            assert entry.type == (ObjectType.FOLDER if is_folder else ObjectType.FILE)
            if is_folder:
                assert entry.size == 0
