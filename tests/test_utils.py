"""Tests for helpers and small model behaviours."""

import base64
import io

import pytest
from PIL import Image

from examprep.models import MockExamResult, Subject
from examprep.utils import (
    decode_image_uri,
    format_time,
    to_jpeg_bytes,
    validate_file_size,
    validate_file_type,
)


def _png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", (4, 4), (255, 0, 0, 128)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.mark.parametrize("seconds,expected", [(600, "10:00"), (1800, "30:00"), (65, "1:05"), (0, "0:00")])
def test_format_time(seconds, expected):
    assert format_time(seconds) == expected


def test_decode_data_uri_and_bare_base64():
    raw = b"hello image"
    encoded = base64.b64encode(raw).decode()

    assert decode_image_uri(f"data:image/jpeg;base64,{encoded}") == raw
    assert decode_image_uri(encoded) == raw


def test_decode_rejects_garbage():
    with pytest.raises(ValueError):
        decode_image_uri("data:image/png;base64,!!!")


def test_png_is_reencoded_as_jpeg():
    jpeg = to_jpeg_bytes(_png_bytes())

    assert Image.open(io.BytesIO(jpeg)).format == "JPEG"


def test_jpeg_passes_through():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buffer, format="JPEG")

    assert to_jpeg_bytes(buffer.getvalue()) == buffer.getvalue()


def test_unreadable_image():
    with pytest.raises(ValueError):
        to_jpeg_bytes(b"definitely not an image")


def test_file_validation():
    assert validate_file_type("script.PNG", ["png", "jpg"])[0]
    assert not validate_file_type("script.pdf", ["png", "jpg"])[0]
    assert not validate_file_size(b"x" * (2 * 1024 * 1024), 1)[0]


def test_subjects_are_a_closed_set_with_codes():
    assert len(Subject) == 8
    assert Subject("Additional Mathematics (0606)").syllabus_code == "0606"
    with pytest.raises(ValueError):
        Subject("Latin (0480)")


@pytest.mark.parametrize("percentage,scale", [(100, 9), (70, 6), (0, 0)])
def test_cambridge_scale_is_derived(percentage, scale):
    result = MockExamResult(
        total_marks=10,
        attained_marks=percentage / 10,
        percentage=percentage,
        grade="A",
        feedback_per_question=[],
        overall_teacher_comments=""
    )
    assert result.cambridge_scale == scale
