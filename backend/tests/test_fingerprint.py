from fluentbee.services.fingerprint import (
    fnv1a_32,
    lesson_fields,
    lesson_fingerprint,
    normalize_field,
    sentence_fingerprint,
)

ITEMS = [
    {"term": "I usually drink coffee before work."},
    {"term": "Where is the train station?"},
    {"kind": "text", "content": "A short reading passage."},
]


def test_fnv1a_known_vectors():
    assert fnv1a_32("") == "811c9dc5"
    assert fnv1a_32("a") == "e40c292c"
    assert fnv1a_32("foobar") == "bf9cf968"


def test_fnv1a_is_eight_lowercase_hex_digits():
    fp = fnv1a_32("Hello, world")
    assert len(fp) == 8
    assert fp == fp.lower()
    int(fp, 16)


def test_normalize_field():
    assert normalize_field("  Hello   World \n") == "hello world"
    assert normalize_field(None) == ""


def test_fingerprint_deterministic():
    a = lesson_fingerprint("Routines", ITEMS, "A1", "routines")
    b = lesson_fingerprint("Routines", [dict(i) for i in ITEMS], "A1", "routines")
    assert a == b


def test_fingerprint_order_independent():
    forward = lesson_fingerprint("Routines", ITEMS, "A1", "routines")
    backward = lesson_fingerprint("Routines", list(reversed(ITEMS)), "A1", "routines")
    assert forward == backward


def test_fingerprint_ignores_case_and_whitespace():
    noisy = [{"term": "  i USUALLY drink   coffee before work. "}, *ITEMS[1:]]
    assert lesson_fingerprint("routines", noisy, "a1", "Routines") == \
        lesson_fingerprint("Routines", ITEMS, "A1", "routines")


def test_fingerprint_sensitive_to_term_changes():
    changed = [{"term": "I usually drink tea before work."}, *ITEMS[1:]]
    assert lesson_fingerprint("Routines", changed, "A1") != lesson_fingerprint("Routines", ITEMS, "A1")


def test_text_items_use_content():
    fields = lesson_fields("T", [{"kind": "text", "content": "Body", "term": "ignored"}])
    assert "body" in fields
    assert "ignored" not in fields


def test_object_items_use_term():
    class Item:
        term = "Hello there friend."

    assert lesson_fingerprint("T", [Item()]) == lesson_fingerprint("T", [{"term": "Hello there friend."}])


def test_sentence_fingerprint_normalizes_punctuation():
    assert sentence_fingerprint("Don't stop now!") == sentence_fingerprint("dont stop now")
    assert sentence_fingerprint("Don't stop now!") != sentence_fingerprint("Do stop now!")
