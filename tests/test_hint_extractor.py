"""
Unit tests for HintExtractor: people, year/decade, genre keywords, plot clues, remake flag, likely title.
Run: python tests/test_hint_extractor.py
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

import pytest

from voice_search.hint_extractor import HintExtractor
from voice_search.models import ExtractedHints


@pytest.fixture(scope="module")
def extractor():
	return HintExtractor()


def assert_equal(actual, expected, msg):
	if actual != expected:
		raise AssertionError(f"{msg} | expected={expected}, actual={actual}")


def assert_true(cond, msg):
	if not cond:
		raise AssertionError(msg)


def test_directed_by_multiword(extractor: HintExtractor):
	hints = extractor.extract("a movie directed by Guillermo del Toro")
	assert_equal(hints.director, "Guillermo Del Toro", "director capitalization normalized")
	assert_equal(hints.actors, (), "no false-positive actors")
	assert_equal(hints.author, None, "no false-positive author")


def test_director_vocabulary(extractor: HintExtractor):
	assert_equal(extractor.extract("the space movie Nolan directed").director, "Christopher Nolan", "surname maps to display name")
	assert_equal(extractor.extract("that tarantno movie with the heist").director, "Quentin Tarantino", "close misspelling")
	assert_equal(extractor.extract("a scary movie in a cabin").director, None, "ordinary words are not a director")


def test_actors(extractor: HintExtractor):
	hints = extractor.extract("that 90s movie with Tom Hanks where he is stranded on an island")
	assert_equal(hints.actors, ("Tom Hanks",), "with-pattern and vocabulary agree on one name")
	assert_equal(hints.decade, 1990, "90s decade")

	hints = extractor.extract("the one where keanu fights everyone")
	assert_equal(hints.actors, ("Keanu",), "distinctive first name alone")

	hints = extractor.extract("a movie with aliens")
	assert_equal(hints.actors, (), "lowercase common noun after 'with' is not an actor")


def test_year(extractor: HintExtractor):
	assert_equal(extractor.extract("the batman from 2022").year, 2022, "four digit year")
	assert_equal(extractor.extract("the one from 1999").year, 1999, "1900s year")
	assert_equal(extractor.extract("the one from 2031").year, None, "outside the accepted range")


def test_decade(extractor: HintExtractor):
	assert_equal(extractor.extract("a movie from the eighties").decade, 1980, "decade word")
	assert_equal(extractor.extract("a 1980s slasher").decade, 1980, "four digit decade")
	assert_equal(extractor.extract("some 2000s comedy").decade, 2000, "2000s")
	assert_equal(extractor.extract("an '80s classic").decade, 1980, "apostrophe decade")
	assert_equal(extractor.extract("the 80 minute cut").decade, None, "plural form required")


def test_author(extractor: HintExtractor):
	assert_equal(extractor.extract("based on the book by Stephen King").author, "Stephen King", "book author")
	assert_equal(extractor.extract("a novel written by Andy Weir").author, "Andy Weir", "written by with book context")
	assert_equal(extractor.extract("the one written by Aaron Sorkin").author, None, "screenwriter without book context")


def test_keywords_and_plot(extractor: HintExtractor):
	hints = extractor.extract("a scary movie with aliens")
	assert_equal(hints.keywords, ("horror", "sci-fi"), "genre keywords in lexicon order")

	hints = extractor.extract("a man escapes from prison")
	assert_equal(hints.plot_clues, ("a man escapes from prison",), "two words either side of the verb")


def test_remake(extractor: HintExtractor):
	assert_true(extractor.extract("the new version of Dune").is_remake_hint, "remake phrasing")
	assert_true(not extractor.extract("the original Dune").is_remake_hint, "no remake phrasing")


def test_likely_title(extractor: HintExtractor):
	assert_equal(extractor.extract("Dune").title_likely, "Dune", "short utterance is the title")
	hints = extractor.extract("can you find The Grand Budapest Hotel")
	assert_equal(hints.title_likely, "The Grand Budapest Hotel", "title after a search verb")
	hints = extractor.extract("I really want to see something nice tonight with my family")
	assert_equal(hints.title_likely, None, "no title cue in a long utterance")


def test_empty_input(extractor: HintExtractor):
	hints = extractor.extract("")
	assert_equal(hints, ExtractedHints(), "empty input yields empty hints")
	assert_true(not hints.has_any_hints, "nothing extracted")


def test_wire_shape(extractor: HintExtractor):
	hints = extractor.extract("that 90s movie with Tom Hanks where he is stranded on an island")
	assert_equal(ExtractedHints.from_wire(hints.to_wire()), hints, "wire form reads back")

	compact = ExtractedHints(year=1999).to_wire(omit_empty=True)
	assert_equal(compact["actors"], None, "empty list sent as null")
	assert_equal(compact["is_remake_hint"], None, "false remake flag sent as null")
	assert_equal(ExtractedHints.from_wire(compact), ExtractedHints(year=1999), "nulls read back as empty")
	assert_equal(ExtractedHints().to_wire()["actors"], [], "full form keeps empty lists")


def test_director_capture_stops_at_trailing_words(extractor: HintExtractor):
	assert_equal(
		extractor.extract("a movie directed by Christopher Nolan about dreams").director,
		"Christopher Nolan", "stops at 'about'",
	)
	assert_equal(extractor.extract("directed by Christopher Nolan in 2010").director, "Christopher Nolan", "stops at 'in'")
	hints = extractor.extract("directed by Steven Spielberg with dinosaurs")
	assert_equal(hints.director, "Steven Spielberg", "stops at 'with'")
	assert_equal(hints.actors, (), "lowercase noun after 'with' is not an actor")
	assert_equal(extractor.extract("directed by del toro 2017").director, "Guillermo Del Toro", "known name inside the capture")


def test_name_capture_stops_at_numbers(extractor: HintExtractor):
	assert_equal(extractor.extract("based on the book by Stephen King 1986").author, "Stephen King", "year not part of the name")


def test_wire_hints_accept_a_lone_name():
	hints = ExtractedHints.from_wire({"actors": "Tom Hanks", "keywords": ["drama"]})
	assert_equal(hints.actors, ("Tom Hanks",), "a string is one name, not characters")
	assert_equal(hints.keywords, ("drama",), "lists unchanged")


def main():
	e = HintExtractor()
	test_directed_by_multiword(e)
	test_director_vocabulary(e)
	test_actors(e)
	test_year(e)
	test_decade(e)
	test_author(e)
	test_keywords_and_plot(e)
	test_remake(e)
	test_likely_title(e)
	test_empty_input(e)
	test_wire_shape(e)
	test_director_capture_stops_at_trailing_words(e)
	test_name_capture_stops_at_numbers(e)
	test_wire_hints_accept_a_lone_name()
	print("All hint extractor tests passed")


if __name__ == '__main__':
	main()
