from app.utils import (
    build_image_url,
    parse_year,
    positive_int,
    round_rating,
    strip_html,
    unique_ordered,
)


def test_strip_html_keeps_line_breaks():
    assert strip_html("One<br>Two<BR/>Three<br />") == "One\nTwo\nThree\n"
    assert strip_html("<p>Plain <b>bold</b></p>") == "Plain bold"
    assert strip_html(None) == ""
    assert strip_html(42) == ""


def test_parse_year():
    assert parse_year("2013-04-07") == 2013
    assert parse_year("2013-04-07T00:00:00Z") == 2013
    assert parse_year("") is None
    assert parse_year("2013") == 2013
    assert parse_year("2024-06") == 2024
    assert parse_year("12345") is None
    assert parse_year("not-a-date") is None
    assert parse_year(None) is None


def test_round_rating_rescales_and_drops_unrated():
    assert round_rating(83, scale=10) == 8.3
    assert round_rating(7.26) == 7.3
    assert round_rating(100, scale=10) == 10.0
    assert round_rating(0) is None
    assert round_rating(None) is None
    assert round_rating(True) is None
    assert round_rating("8") is None


def test_build_image_url():
    base = "https://image.tmdb.org/t/p/w500"
    assert build_image_url("/poster.jpg", base) == f"{base}/poster.jpg"
    assert build_image_url("https://cdn.example/poster.jpg", base) == "https://cdn.example/poster.jpg"
    assert build_image_url(None, base) is None
    assert build_image_url("", base) is None


def test_unique_ordered_and_positive_int():
    assert unique_ordered(["Drama", "Action", "Drama"]) == ["Drama", "Action"]
    assert positive_int(12) == 12
    assert positive_int(0) is None
    assert positive_int(False) is None
    assert positive_int("3") is None
