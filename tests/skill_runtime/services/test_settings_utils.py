"""Tests for dotted-path helpers, deep merge and secret masking."""

from skillcore.skill_runtime.services.settings_utils import (
    MASK_SENTINEL,
    MISSING,
    apply_patch_with_mask_handling,
    deep_merge,
    delete_by_path,
    get_by_path,
    mask_sensitive,
    set_by_path,
)


class TestDeepMerge:
    """Test recursive merging."""

    def test_nested_merge(self):
        """Test nested objects merge key by key."""
        assert deep_merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3, "z": 4}}) == {
            "a": {"x": 1, "y": 3, "z": 4}
        }

    def test_lists_and_scalars_replace(self):
        """Test non-object values replace wholesale."""
        merged = deep_merge({"tags": [1, 2], "a": {"b": 1}}, {"tags": [3], "a": 5})
        assert merged == {"tags": [3], "a": 5}

    def test_inputs_not_mutated(self):
        """Test neither argument is modified."""
        base = {"a": {"x": 1}}
        patch = {"a": {"y": [1]}}
        merged = deep_merge(base, patch)
        merged["a"]["y"].append(2)
        assert base == {"a": {"x": 1}}
        assert patch == {"a": {"y": [1]}}


class TestPathHelpers:
    """Test dotted-path navigation."""

    def test_get(self):
        """Test lookups, misses and the root path."""
        doc = {"a": {"b": {"c": 1}}, "s": "text"}
        assert get_by_path(doc, "a.b.c") == 1
        assert get_by_path(doc, " a . b ") == {"c": 1}
        assert get_by_path(doc, "a.x") is MISSING
        assert get_by_path(doc, "s.length") is MISSING
        assert get_by_path(doc, "") is doc

    def test_set_creates_intermediates(self):
        """Test missing and non-object intermediates are replaced."""
        doc = {"a": 1}
        set_by_path(doc, "a.b.c", 2)
        assert doc == {"a": {"b": {"c": 2}}}

    def test_set_empty_path_is_noop(self):
        """Test setting the root does nothing."""
        doc = {"a": 1}
        set_by_path(doc, "..", 2)
        assert doc == {"a": 1}

    def test_delete(self):
        """Test deleting leaves and missing paths."""
        doc = {"a": {"b": 1, "c": 2}}
        delete_by_path(doc, "a.b")
        delete_by_path(doc, "x.y")
        assert doc == {"a": {"c": 2}}


class TestMasking:
    """Test the mask-aware read/write protocol."""

    def test_mask_sensitive(self):
        """Test non-empty secrets are masked and reported."""
        result = mask_sensitive({"token": "abc123"}, ["token"])
        assert result.masked_settings == {"token": MASK_SENTINEL}
        assert result.masked_map == {"token": True}

    def test_empty_values_untouched(self):
        """Test empty or absent secrets are neither masked nor reported."""
        doc = {"token": "", "keys": [], "nested": {"secret": None}}
        result = mask_sensitive(doc, ["token", "keys", "nested.secret", "missing"])
        assert result.masked_settings == doc
        assert result.masked_map == {}

    def test_non_string_values_masked(self):
        """Test numbers and objects count as non-empty."""
        result = mask_sensitive({"pin": 0, "creds": {"a": 1}}, ["pin", "creds"])
        assert result.masked_settings == {"pin": MASK_SENTINEL, "creds": MASK_SENTINEL}

    def test_sentinel_keeps_existing_value(self):
        """Test writing the sentinel back leaves the stored secret unchanged."""
        updated = apply_patch_with_mask_handling(
            {"token": "abc123"}, {"token": MASK_SENTINEL}, ["token"]
        )
        assert updated == {"token": "abc123"}

    def test_sentinel_without_existing_value_dropped(self):
        """Test the sentinel never becomes a stored value."""
        updated = apply_patch_with_mask_handling({}, {"token": MASK_SENTINEL, "name": "x"}, ["token"])
        assert updated == {"name": "x"}

    def test_new_secret_replaces(self):
        """Test a real value overwrites the stored secret."""
        updated = apply_patch_with_mask_handling({"token": "old"}, {"token": "new"}, ["token"])
        assert updated == {"token": "new"}

    def test_round_trip(self):
        """Test read, write back unchanged and read again reproduces the original."""
        stored = {"api": {"key": "s3cr3t", "url": "https://example.test"}, "name": "bot"}
        sensitive = ["api.key"]

        masked = mask_sensitive(stored, sensitive)
        assert masked.masked_settings["api"]["key"] == MASK_SENTINEL
        assert masked.masked_map == {"api.key": True}

        updated = apply_patch_with_mask_handling(stored, masked.masked_settings, sensitive)
        assert updated == stored
        assert mask_sensitive(updated, sensitive).masked_settings == masked.masked_settings
