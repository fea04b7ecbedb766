from fluentbee.services.sentence_validator import (
    PHRASE_WORD_BAND,
    SENTENCE_WORD_BAND,
    ends_with_terminal_punctuation,
    is_ascii,
    starts_with_capital,
    strip_non_ascii,
    validate_candidate,
    word_count_in_band,
)
from fluentbee.services.similarity import tokenize


def _validate(text, band=SENTENCE_WORD_BAND, full_sentence=True):
    return validate_candidate(text, tokenize(text), band, full_sentence)


def test_word_band_is_inclusive():
    assert word_count_in_band(["w"] * 8, SENTENCE_WORD_BAND)
    assert word_count_in_band(["w"] * 14, SENTENCE_WORD_BAND)
    assert not word_count_in_band(["w"] * 7, SENTENCE_WORD_BAND)
    assert not word_count_in_band(["w"] * 15, SENTENCE_WORD_BAND)


def test_structural_predicates():
    assert starts_with_capital("Hello there.")
    assert not starts_with_capital("hello there.")
    assert not starts_with_capital("")
    assert ends_with_terminal_punctuation("Really?")
    assert ends_with_terminal_punctuation("Stop!")
    assert not ends_with_terminal_punctuation("No punctuation")


def test_ascii_guard():
    assert is_ascii("Plain text.")
    assert not is_ascii("Café time.")
    assert strip_non_ascii("I like  café  ☕ coffee.") == "I like caf coffee."


def test_valid_sentence():
    result = _validate("My brother walks to the office every morning before eight.")
    assert result.valid
    assert result.issues == []


def test_seven_words_rejected():
    result = _validate("My brother walks to the office daily.")
    assert not result.valid
    assert result.issues == ["word_count_in_band"]


def test_lowercase_start_and_missing_punctuation_reported():
    result = _validate("my brother walks to the office every morning before eight")
    assert result.issues == ["starts_with_capital", "ends_with_terminal_punctuation"]


def test_phrase_items_skip_sentence_checks():
    result = _validate("good morning", band=PHRASE_WORD_BAND, full_sentence=False)
    assert result.valid
