"""
Tests for temp upload storage and the retention sweep.
"""

import os
import time

import pytest

from printkiosk.errors import FileTooLargeError, InvalidImageFormatError
from printkiosk.uploads import sanitize_upload_name, save_upload, sweep_temp_uploads

from .conftest import make_image_bytes

DAY = 24 * 60 * 60


def fixed_clock():
    return 1700000000.5


class TestSanitizeUploadName:

    @pytest.mark.parametrize("name,expected", [
        ('my photo.jpg', 'my_photo.jpg'),
        ('../a b#c.JPG', 'a_b_c.JPG'),
        ('foto-ñandú.png', 'foto-_and_.png'),
        ('', 'photo'),
        (None, 'photo'),
    ])
    def test_unsafe_characters_replaced(self, name, expected):
        assert sanitize_upload_name(name) == expected


class TestSaveUpload:
    """Test storing uploads under generated names."""

    def test_name_is_timestamp_and_sanitized_name(self, tmp_path):
        data = make_image_bytes((10, 10))

        name = save_upload(data, 'my photo.jpg', tmp_path, clock=fixed_clock)

        assert name == '1700000000500_my_photo.jpg'
        assert (tmp_path / name).read_bytes() == data

    def test_collisions_get_a_new_stamp(self, tmp_path):
        data = make_image_bytes((10, 10))

        first = save_upload(data, 'a.jpg', tmp_path, clock=fixed_clock)
        second = save_upload(data, 'a.jpg', tmp_path, clock=fixed_clock)

        assert first == '1700000000500_a.jpg'
        assert second == '1700000000501_a.jpg'

    def test_creates_missing_folder(self, tmp_path):
        target = tmp_path / 'nested' / 'temp'
        name = save_upload(make_image_bytes((10, 10)), 'a.png', target, clock=fixed_clock)
        assert (target / name).exists()

    def test_extension_not_allowed(self, tmp_path):
        with pytest.raises(InvalidImageFormatError) as exc_info:
            save_upload(b'GIF89a', 'anim.gif', tmp_path)
        assert exc_info.value.details['detected_type'] == '.gif'
        assert list(tmp_path.iterdir()) == []

    def test_extension_check_ignores_case(self, tmp_path):
        name = save_upload(make_image_bytes((10, 10)), 'IMG_0001.JPG', tmp_path, clock=fixed_clock)
        assert name.endswith('IMG_0001.JPG')

    def test_file_too_large(self, tmp_path):
        with pytest.raises(FileTooLargeError):
            save_upload(b'x' * 2048, 'big.jpg', tmp_path, max_size=1024)

    def test_invalid_heic_rejected(self, tmp_path):
        with pytest.raises(InvalidImageFormatError) as exc_info:
            save_upload(b'not heic data', 'IMG_0002.HEIC', tmp_path)
        assert exc_info.value.details['detected_type'] == 'heic'
        assert list(tmp_path.iterdir()) == []


class TestSweep:
    """Test the retention sweep of the temp upload folder."""

    def test_removes_only_expired_files(self, tmp_path):
        now = time.time()
        old = tmp_path / 'old.jpg'
        fresh = tmp_path / 'fresh.jpg'
        old.write_bytes(b'1')
        fresh.write_bytes(b'2')
        os.utime(old, (now - 4 * DAY, now - 4 * DAY))
        os.utime(fresh, (now - 1 * DAY, now - 1 * DAY))

        removed = sweep_temp_uploads(tmp_path, max_age_days=3, now=now)

        assert removed == [old]
        assert not old.exists()
        assert fresh.exists()

    def test_subdirectories_are_left_alone(self, tmp_path):
        now = time.time()
        folder = tmp_path / 'folder'
        folder.mkdir()
        os.utime(folder, (now - 10 * DAY, now - 10 * DAY))

        assert sweep_temp_uploads(tmp_path, max_age_days=3, now=now) == []
        assert folder.exists()

    def test_missing_folder(self, tmp_path):
        assert sweep_temp_uploads(tmp_path / 'absent') == []
