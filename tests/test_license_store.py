"""Tests for the local license key file."""

import os
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from exceptions import AlreadyLicensed, KeyWriteFailed, NotWritable, LicenseStoreError
from license_store import LicenseStore, format_license_key, LICENSE_KEY_LINE_LENGTH


class TestRead:

    def test_missing_file(self, license_store):
        assert license_store.read() is None

    def test_empty_file(self, license_store):
        license_store.key_path.write_text("")
        assert license_store.read() is None

    @pytest.mark.parametrize("contents", ["temp", "temp\n", "  temp \r\n", "temp\r\n\r\n"])
    def test_temp_sentinel(self, license_store, contents):
        license_store.key_path.write_text(contents)
        assert license_store.read() is None

    def test_sentinel_is_case_sensitive(self, license_store):
        license_store.key_path.write_text("TEMP")
        assert license_store.read() == "TEMP"

    def test_line_breaks_removed(self, license_store):
        license_store.key_path.write_bytes(b"  ABCDE\r\nFGHIJ\nKLM\r\n")
        assert license_store.read() == "ABCDEFGHIJKLM"

    def test_directory_is_not_a_key(self, license_store):
        license_store.key_path.mkdir()
        assert license_store.read() is None


class TestFormat:

    def test_wraps_at_fifty_characters(self):
        key = "A" * 50 + "B" * 50 + "C" * 7
        assert format_license_key(key) == (
            "A" * 50 + os.linesep + "B" * 50 + os.linesep + "C" * 7 + os.linesep
        )

    def test_empty_key(self):
        assert format_license_key("") == ""

    def test_line_length(self):
        assert LICENSE_KEY_LINE_LENGTH == 50


class TestWrite:

    @pytest.mark.parametrize("length", [49, 50, 51, 137])
    def test_round_trip(self, license_store, length):
        key = "".join(chr(ord("A") + i % 26) for i in range(length))

        license_store.write(key)

        assert license_store.read() == key
        lines = license_store.key_path.read_bytes().decode().split(os.linesep)
        assert all(len(line) <= 50 for line in lines)

    def test_empty_key_reads_back_as_none(self, license_store):
        license_store.write("")

        assert license_store.key_path.read_text() == ""
        assert license_store.read() is None

    def test_refuses_to_overwrite(self, license_store):
        original = b"EXISTINGKEY\r\nSECONDLINE\r\n"
        license_store.key_path.write_bytes(original)

        with pytest.raises(AlreadyLicensed):
            license_store.write("X" * 80)

        assert license_store.key_path.read_bytes() == original

    def test_overwrites_temp_sentinel(self, license_store):
        license_store.key_path.write_text("temp\n")

        license_store.write("NEWKEY")

        assert license_store.read() == "NEWKEY"

    def test_second_write_fails(self, license_store):
        license_store.write("FIRST")

        with pytest.raises(AlreadyLicensed):
            license_store.write("SECOND")

        assert license_store.read() == "FIRST"

    def test_not_writable(self, tmp_path):
        store = LicenseStore(tmp_path / "license.key", tmp_path / "missing")

        assert not store.is_writable()
        with pytest.raises(NotWritable):
            store.write("KEY")

        assert not store.key_path.exists()

    def test_file_system_failure_is_wrapped(self, license_store, config_dir):
        # A directory where the key file belongs makes the rename fail
        license_store.key_path.mkdir()

        with pytest.raises(KeyWriteFailed) as excinfo:
            license_store.write("K" * 60)

        assert isinstance(excinfo.value, LicenseStoreError)
        assert isinstance(excinfo.value.cause, OSError)
        assert sorted(p.name for p in config_dir.iterdir()) == ["license.key", "license.key.lock"]

    def test_no_temp_files_left_behind(self, license_store, config_dir):
        license_store.write("K" * 120)

        assert sorted(p.name for p in config_dir.iterdir()) == ["license.key", "license.key.lock"]

    def test_concurrent_first_writes(self, license_store):
        writers = 8
        barrier = threading.Barrier(writers)

        def attempt(i):
            barrier.wait()
            try:
                license_store.write(f"KEY{i:02d}" * 20)
                return i
            except AlreadyLicensed:
                return None

        with ThreadPoolExecutor(max_workers=writers) as pool:
            results = list(pool.map(attempt, range(writers)))

        winners = [i for i in results if i is not None]
        assert len(winners) == 1
        assert license_store.read() == f"KEY{winners[0]:02d}" * 20


class TestIsWritable:

    def test_existing_directory(self, license_store):
        assert license_store.is_writable()

    def test_config_path_defaults_to_key_directory(self, config_dir):
        store = LicenseStore(config_dir / "license.key")
        assert store.config_path == config_dir
        assert store.is_writable()
