import pytest

from vip.modules.imagery.models import CacheKey, ImageFormat, ImagePayload

MAX_WIDTH = 1024


def build(width=None, crop=None) -> CacheKey:
    return CacheKey.from_request("cat.jpg", "photos", width, crop, MAX_WIDTH)


def test_width_is_parsed():
    assert build("200").width == 200


@pytest.mark.parametrize("width", ["1025", "5000", "99999999"])
def test_width_above_max_is_clamped(width):
    assert build(width).width == MAX_WIDTH


@pytest.mark.parametrize("width", [None, "", "abc", "12px", "1.5"])
def test_unparseable_width_means_no_resize(width):
    key = build(width)
    assert key.width == 0


def test_negative_width_means_no_resize():
    assert build("-50").width == 0


@pytest.mark.parametrize("crop", ["true", "TRUE", "True", "tRuE"])
def test_crop_is_case_insensitive(crop):
    assert build(crop=crop).crop is True


@pytest.mark.parametrize("crop", [None, "", "false", "1", "yes", "truee"])
def test_crop_other_values_are_false(crop):
    assert build(crop=crop).crop is False


def test_equal_parameters_give_equal_keys():
    first = build("300", "true")
    second = CacheKey(bucket="photos", image_id="cat.jpg", width=300, crop=True)

    assert first == second
    assert hash(first) == hash(second)
    assert len({first, second}) == 1


def test_key_is_immutable():
    key = build("300")
    with pytest.raises(AttributeError):
        key.width = 10


def test_needs_transform():
    assert build().needs_transform is False
    assert build("10").needs_transform is True
    assert build(crop="true").needs_transform is True


def test_modified_name_distinguishes_variants():
    names = {
        build().modified_name,
        build("200").modified_name,
        build("200", "true").modified_name,
        build(crop="true").modified_name,
    }
    assert len(names) == 4
    assert build("200", "true").modified_name == "cat.jpg/s200_crop"


def test_redis_key():
    assert build("200", "true").redis_key("vip") == "vip:photos:cat.jpg:200:1"


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"\xff\xd8\xff\xe0rest", ImageFormat.JPEG),
        (b"\x89PNG\r\n\x1a\nrest", ImageFormat.PNG),
        (b"GIF89arest", ImageFormat.GIF),
        (b"RIFF....WEBP", ImageFormat.UNSUPPORTED),
    ],
)
def test_payload_sniffs_format(data, expected):
    payload = ImagePayload.from_bytes(data)
    assert payload.format is expected
    assert payload.size == len(data)


def test_format_content_types():
    assert ImageFormat.from_content_type("image/gif") is ImageFormat.GIF
    assert ImageFormat.from_content_type("image/jpeg; charset=binary") is ImageFormat.JPEG
    assert ImageFormat.from_content_type(None) is ImageFormat.UNSUPPORTED
    assert ImageFormat.UNSUPPORTED.content_type == "application/octet-stream"
    assert ImageFormat.JPEG.encodable and ImageFormat.PNG.encodable
    assert not ImageFormat.GIF.encodable
