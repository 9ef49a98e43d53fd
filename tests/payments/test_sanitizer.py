from decimal import Decimal

from domain.webhook import sanitize
from domain.webhook.sanitizer import sanitize_string


def test_script_payload_is_neutralised():
    payload = {"name": "<script>alert(1)</script>", "onclick": "evil()", "ok": "fine"}
    clean = sanitize(payload)

    assert clean["name"] == "scriptalert(1)/script"
    assert "<" not in clean["name"] and ">" not in clean["name"]
    assert clean["ok"] == "fine"


def test_inline_event_handler_fragments_are_removed():
    assert sanitize_string('img src=x onerror=alert(1)') == "img src=x alert(1)"
    assert sanitize_string("ONMOUSEOVER = steal()") == "steal()"


def test_script_schemes_are_removed_case_insensitively():
    assert sanitize_string("JavaScript:alert(1)") == "alert(1)"
    assert sanitize_string("go to javascript:void(0)") == "go to void(0)"


def test_strings_are_trimmed_and_control_characters_dropped():
    assert sanitize_string("  hello\x00 world\n ") == "hello world"


def test_scalars_pass_through_unchanged():
    assert sanitize(100000) == 100000
    assert sanitize(12.5) == 12.5
    assert sanitize(True) is True
    assert sanitize(False) is False
    assert sanitize(None) is None


def test_nested_structures_are_sanitized_recursively():
    payload = {
        "data": {
            "metadata": {"note": "<b>hi</b>", "items": ["<i>x</i>", 3, {"k": "onload=bad"}]},
            "amount": 100000,
        }
    }
    clean = sanitize(payload)
    assert clean == {
        "data": {
            "metadata": {"note": "bhi/b", "items": ["ix/i", 3, {"k": "bad"}]},
            "amount": 100000,
        }
    }


def test_keys_are_sanitized_too():
    assert sanitize({"<evil>": "v"}) == {"evil": "v"}


def test_unsupported_types_become_empty_objects():
    assert sanitize(Decimal("1.5")) == {}
    assert sanitize({"when": object()}) == {"when": {}}
    assert sanitize(b"bytes") == {}
