"""Per-run exclusion rules evaluated before and during writes."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .errors import FilteredOut
from .models import MovieDetail, Term


@dataclass(slots=True)
class FilterRules:
    """Exclusion sets supplied with a run.

    A type match drops the whole item; genre and country matches only drop
    the matching associations.
    """

    skip_formats: frozenset[str] = field(default_factory=frozenset)
    skip_genres: frozenset[str] = field(default_factory=frozenset)
    skip_countries: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def build(
        cls,
        skip_formats: Iterable[str] = (),
        skip_genres: Iterable[str] = (),
        skip_countries: Iterable[str] = (),
    ) -> "FilterRules":
        return cls(
            skip_formats=frozenset(value.strip() for value in skip_formats if value and value.strip()),
            skip_genres=frozenset(value.strip() for value in skip_genres if value and value.strip()),
            skip_countries=frozenset(value.strip() for value in skip_countries if value and value.strip()),
        )

    def check_type(self, movie: MovieDetail) -> None:
        if movie.type in self.skip_formats:
            raise FilteredOut(f"Skipped format: {movie.type}", movie_type=movie.type)

    def allowed_genres(self, terms: list[Term]) -> list[Term]:
        return [term for term in terms if term.name not in self.skip_genres]

    def allowed_countries(self, terms: list[Term]) -> list[Term]:
        return [term for term in terms if term.name not in self.skip_countries]
