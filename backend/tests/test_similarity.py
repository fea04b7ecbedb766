import pytest

from fluentbee.services.similarity import (
    is_near_duplicate,
    jaccard,
    ngram_overlap,
    normalize_text,
    tokenize,
)


def test_tokenize_strips_apostrophes_and_punctuation():
    assert tokenize("I don't want that?") == ["i", "dont", "want", "that"]
    assert tokenize("Hello,   WORLD!!") == ["hello", "world"]
    assert normalize_text("") == ""


def test_jaccard_identical_and_disjoint():
    assert jaccard(["a", "b"], ["b", "a"]) == 1.0
    assert jaccard(["a"], ["b"]) == 0.0
    assert jaccard([], []) == 0.0


def test_jaccard_partial():
    assert jaccard(["a", "b", "c"], ["a", "b", "d"]) == pytest.approx(0.5)


def test_ngram_overlap_short_inputs_do_not_divide_by_zero():
    assert ngram_overlap(["a", "b"], ["a", "b"]) == 0.0
    assert ngram_overlap([], ["a", "b", "c"]) == 0.0


def test_ngram_overlap_uses_smaller_set():
    a = tokenize("we went to the market yesterday")
    b = tokenize("we went to the market yesterday with my mother and sister")
    assert ngram_overlap(a, b) == 1.0


def test_near_duplicate_by_jaccard():
    base = tokenize("My brother walks to the office every morning.")
    reordered = tokenize("Every morning my brother walks to the office.")
    assert is_near_duplicate(reordered, [base])


def test_near_duplicate_by_ngram():
    base = tokenize("I would like to order a large bowl of noodle soup.")
    extended = tokenize(
        "Tonight after work I would like to order a large bowl of noodle soup with extra chicken, please."
    )
    assert jaccard(base, extended) < 0.8
    assert is_near_duplicate(extended, [base])


def test_distinct_sentences_are_not_near_duplicates():
    a = tokenize("Where is the nearest train station from this hotel?")
    b = tokenize("Please turn off the lights when you leave the room.")
    assert not is_near_duplicate(a, [b])
    assert not is_near_duplicate(a, [])
