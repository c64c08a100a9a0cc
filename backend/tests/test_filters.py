"""Tests for per-run exclusion rules and image rewrites."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.ingest.errors import FilteredOut  # noqa: E402
from backend.ingest.filters import FilterRules  # noqa: E402
from backend.ingest.images import ImageOptions, ImagePostProcessor  # noqa: E402
from backend.ingest.models import MovieDetail, Term  # noqa: E402


def test_type_rule_raises_filtered_out() -> None:
    rules = FilterRules.build(skip_formats=["single", " "])
    movie = MovieDetail(slug="phim-le", name="Phim Lẻ", type="single")

    with pytest.raises(FilteredOut) as excinfo:
        rules.check_type(movie)

    assert excinfo.value.movie_type == "single"
    assert excinfo.value.message == "Skipped format: single"


def test_type_rule_allows_other_types() -> None:
    rules = FilterRules.build(skip_formats=["single"])

    rules.check_type(MovieDetail(slug="phim-bo", name="Phim Bộ", type="series"))


def test_genre_and_country_rules_drop_only_matching_terms() -> None:
    rules = FilterRules.build(skip_genres=["Kinh Dị"], skip_countries=["Mỹ"])
    genres = [Term("Kinh Dị", "kinh-di"), Term("Hài Hước", "hai-huoc")]
    countries = [Term("Mỹ", "au-my"), Term("Hàn Quốc", "han-quoc")]

    assert rules.allowed_genres(genres) == [Term("Hài Hước", "hai-huoc")]
    assert rules.allowed_countries(countries) == [Term("Hàn Quốc", "han-quoc")]


def test_image_processor_returns_source_url_without_proxy() -> None:
    processor = ImagePostProcessor(ImageOptions(resize_poster=True, poster_width=300, save_as_webp=True))

    assert processor.poster("https://img.example/p.jpg") == "https://img.example/p.jpg"
    assert processor.thumb("") == ""


def test_image_processor_rewrites_through_proxy() -> None:
    processor = ImagePostProcessor(
        ImageOptions(resize_thumb=True, thumb_width=320, thumb_height=180, save_as_webp=True),
        proxy_url="https://resize.example/img",
    )

    assert processor.thumb("https://img.example/t.jpg") == (
        "https://resize.example/img?url=https%3A%2F%2Fimg.example%2Ft.jpg&w=320&h=180&output=webp"
    )
    # Poster resizing is off, only the format conversion applies.
    assert processor.poster("https://img.example/p.jpg") == (
        "https://resize.example/img?url=https%3A%2F%2Fimg.example%2Fp.jpg&output=webp"
    )


def test_image_processor_leaves_urls_alone_when_nothing_requested() -> None:
    processor = ImagePostProcessor(ImageOptions(), proxy_url="https://resize.example/img")

    assert processor.poster("https://img.example/p.jpg") == "https://img.example/p.jpg"
