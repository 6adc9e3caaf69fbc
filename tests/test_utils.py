import pytest

from app.utils import extract_json_payload, generate_message_id, is_number


def test_extract_json_payload_from_markdown():
    payload = """
    Here is your payload:
    ```json
    {"recommendations": []}
    ```
    """
    assert extract_json_payload(payload) == {"recommendations": []}


def test_extract_json_payload_plain_array():
    assert extract_json_payload('[{"title": "Aria"}]') == [{"title": "Aria"}]


def test_extract_json_payload_without_json_raises():
    with pytest.raises(ValueError):
        extract_json_payload("no json here")


def test_is_number_excludes_bools_and_nan():
    assert is_number(3)
    assert is_number(2.5)
    assert not is_number(True)
    assert not is_number("8")
    assert not is_number(float("nan"))


def test_generate_message_id_prefix():
    message_id = generate_message_id("manual-refresh", 1_700_000_000_000)
    assert message_id.startswith("manual-refresh-1700000000000-")
    assert len(message_id.rsplit("-", 1)[1]) == 9


def test_is_number_rejects_integers_beyond_float_range():
    assert is_number(10**20)
    assert not is_number(10**400)
    assert not is_number(-(10**400))
