"""
Unit tests for CommandParser: recommender phrasing, search verbs, watchlist phrasing and actions.
Run: python tests/test_command_parser.py
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

import pytest

from voice_search.command_parser import CommandParser
from voice_search.models import (
	AddToList,
	CreateWatchlist,
	MarkWatched,
	MovieSearch,
	RecommenderSearch,
	SortList,
	Unknown,
	Utterance,
)


@pytest.fixture(scope="module")
def parser():
	return CommandParser()


def assert_equal(actual, expected, msg):
	if actual != expected:
		raise AssertionError(f"{msg} | expected={expected}, actual={actual}")


def assert_true(cond, msg):
	if not cond:
		raise AssertionError(msg)


def test_person_recommends(parser: CommandParser):
	cmd = parser.parse("Sabrina recommends Baby Girl")
	assert_true(isinstance(cmd, RecommenderSearch), "recommender form -> RecommenderSearch")
	assert_equal(cmd.recommender, "Sabrina", "recommender name")
	assert_equal(cmd.movie, "Baby Girl", "movie title")
	assert_true(cmd.is_valid, "recommender search is valid")


def test_publication_recommends(parser: CommandParser):
	cmd = parser.parse("The Wall Street Journal recommends Baby Girl")
	assert_true(isinstance(cmd, RecommenderSearch), "publication recommender")
	assert_equal(cmd.recommender, "The Wall Street Journal", "multi-word publication kept intact")
	assert_equal(cmd.movie, "Baby Girl", "movie title")


def test_add_to_watchlist(parser: CommandParser):
	cmd = parser.parse("add The Devil Wears Prada to my watchlist")
	assert_true(isinstance(cmd, MovieSearch), "add phrasing -> MovieSearch")
	assert_equal(cmd.query, "The Devil Wears Prada", "watchlist suffix removed")


def test_bare_title_is_unknown(parser: CommandParser):
	cmd = parser.parse("The Devil Wears Prada")
	assert_true(isinstance(cmd, Unknown), "no trigger phrase -> Unknown")
	assert_equal(cmd.raw.text, "The Devil Wears Prada", "raw utterance preserved")
	assert_true(not cmd.is_valid, "Unknown is invalid")


def test_deterministic(parser: CommandParser):
	for text in ["Sabrina recommends Baby Girl", "The Devil Wears Prada", "find Dune", "  "]:
		assert_equal(parser.parse(text), parser.parse(text), f"parse is deterministic for {text!r}")


def test_reverse_order_and_other_verbs(parser: CommandParser):
	cmd = parser.parse("the movie Heat recommended by Sabrina")
	assert_true(isinstance(cmd, RecommenderSearch), "reverse order")
	assert_equal((cmd.recommender, cmd.movie), ("Sabrina", "Heat"), "reverse order groups, movie prefix removed")

	cmd = parser.parse("Marcus said to watch Past Lives")
	assert_equal((cmd.recommender, cmd.movie), ("Marcus", "Past Lives"), "said to watch")

	cmd = parser.parse("mom liked the movie Arrival.")
	assert_equal((cmd.recommender, cmd.movie), ("Mom", "Arrival"), "lowercase recommender capitalized, period stripped")


def test_misheard_recommender_is_normalized(parser: CommandParser):
	cmd = parser.parse("hyatt recommends Oppenheimer")
	assert_equal(cmd.recommender, "Hayat", "known mishearing normalized")
	cmd = parser.parse("Kyle and suggested Aftersun")
	assert_equal(cmd.recommender, "Kailan", "multi-word mishearing normalized")


def test_search_verbs(parser: CommandParser):
	assert_equal(parser.parse("find Mad Max: Fury Road").movie_title, "Mad Max: Fury Road", "find keeps embedded punctuation")
	assert_equal(parser.parse("Search for   Alien?").movie_title, "Alien", "search for, whitespace and trailing ? handled")
	assert_equal(parser.parse("look up Airplane!").movie_title, "Airplane!", "look up keeps exclamation mark")


def test_movie_prefix_and_recommend_movie(parser: CommandParser):
	assert_equal(parser.parse("the movie Heat").movie_title, "Heat", "the movie prefix")
	assert_equal(parser.parse("movie Heat").movie_title, "Heat", "movie prefix")
	cmd = parser.parse("trying to recommend the movie China Syndrome")
	assert_true(isinstance(cmd, MovieSearch), "speaker filler is not a recommender")
	assert_equal(cmd.query, "China Syndrome", "recommend the movie X")


def test_add_requires_word_boundary(parser: CommandParser):
	cmd = parser.parse("Paddington")
	assert_true(isinstance(cmd, Unknown), "'add' inside a word does not trigger")
	cmd = parser.parse("add this to my watchlist")
	assert_true(isinstance(cmd, Unknown), "pronoun is not a title")


def test_accepts_utterance_objects(parser: CommandParser):
	u = Utterance("find Dune")
	cmd = parser.parse(u)
	assert_true(cmd.raw is u, "raw utterance passed through")


def test_parse_action(parser: CommandParser):
	action = parser.parse_action("create a new list called Date Night.")
	assert_true(isinstance(action, CreateWatchlist), "create list action")
	assert_equal(action.list_name, "Date Night", "list name, punctuation trimmed")

	action = parser.parse_action("Make a list named Horror Picks")
	assert_equal(action.list_name, "Horror Picks", "list name keeps casing")

	assert_equal(parser.parse_action("mark as watched"), MarkWatched(True, Utterance("mark as watched")), "mark watched")
	assert_equal(parser.parse_action("mark has watched").watched, True, "misheard 'as'")
	assert_equal(parser.parse_action("mark as unwatched").watched, False, "unwatched wins over watched")
	assert_equal(parser.parse_action("I haven't watched it yet").watched, False, "negated watched")
	assert_equal(parser.parse_action("Sabrina recommends Baby Girl"), None, "not an action")


def test_more_action_phrasings(parser: CommandParser):
	assert_equal(parser.parse_action("mark it as watched").watched, True, "pronoun form")
	assert_equal(parser.parse_action("Mark this as unwatched").watched, False, "pronoun form, unwatched")
	action = parser.parse_action("create a new watchlist called Horror")
	assert_equal(action, CreateWatchlist("Horror", Utterance("create a new watchlist called Horror")), "watchlist wording")


def test_add_this_to_list(parser: CommandParser):
	action = parser.parse_action("add this to my Date Night list")
	assert_equal(action, AddToList("Date Night", Utterance("add this to my Date Night list")), "named list, suffix dropped")
	assert_equal(parser.parse_action("put this movie in Favorites.").list_name, "Favorites", "put-in phrasing")
	assert_equal(parser.parse_action("add this to my watchlist").list_name, "Watchlist", "generic list -> default")
	assert_equal(parser.parse_action("add this to my list, it's about a haunted house").list_name, "Watchlist", "trailing clause ignored")


def test_sort_list(parser: CommandParser):
	assert_equal(parser.parse_action("sort by rating"), SortList("Tasty Score", Utterance("sort by rating")), "rating -> score")
	assert_equal(parser.parse_action("sort by year, oldest first").sort_by, "Year Oldest First", "direction")
	assert_equal(parser.parse_action("sort by AI rating highest").sort_by, "AI Score Highest", "AI rating")
	assert_equal(parser.parse_action("sort alphabetically").sort_by, "Title", "alphabetical")
	assert_equal(parser.parse_action("sort by watched").sort_by, "Watched", "sort beats mark watched")
	assert_equal(parser.parse_action("sort this"), None, "no sort key")
	assert_equal(parser.parse_action("the sorting hat movie"), None, "sort needs a key word")


def main():
	p = CommandParser()
	test_person_recommends(p)
	test_publication_recommends(p)
	test_add_to_watchlist(p)
	test_bare_title_is_unknown(p)
	test_deterministic(p)
	test_reverse_order_and_other_verbs(p)
	test_misheard_recommender_is_normalized(p)
	test_search_verbs(p)
	test_movie_prefix_and_recommend_movie(p)
	test_add_requires_word_boundary(p)
	test_accepts_utterance_objects(p)
	test_parse_action(p)
	test_more_action_phrasings(p)
	test_add_this_to_list(p)
	test_sort_list(p)
	print("All command parser tests passed")


if __name__ == '__main__':
	main()
