"""Catalog store: the persistence gateway used by crawl runs and catalog reads."""
from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Any, Iterator

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from backend.ingest.errors import PersistenceError

from ..models import (
    ActorRecord,
    CountryRecord,
    DirectorRecord,
    EpisodeRecord,
    GenreRecord,
    MovieActorLink,
    MovieCategoryLink,
    MovieCategoryRecord,
    MovieCountryLink,
    MovieDirectorLink,
    MovieGenreLink,
    MovieRecord,
    YearRecord,
)
from ..schemas import (
    CatalogMetricsModel,
    EpisodeModel,
    MovieDetailModel,
    MovieListModel,
    MovieModel,
    ServerModel,
    TermModel,
)

ENTITY_TABLES: dict[str, type[SQLModel]] = {
    "genres": GenreRecord,
    "countries": CountryRecord,
    "actors": ActorRecord,
    "directors": DirectorRecord,
    "movie_categories": MovieCategoryRecord,
}

# join table -> (link model, entity column, entity model)
JOIN_TABLES: dict[str, tuple[type[SQLModel], str, type[SQLModel]]] = {
    "movie_genres": (MovieGenreLink, "genre_id", GenreRecord),
    "movie_countries": (MovieCountryLink, "country_id", CountryRecord),
    "movie_actors": (MovieActorLink, "actor_id", ActorRecord),
    "movie_directors": (MovieDirectorLink, "director_id", DirectorRecord),
    "movie_category_map": (MovieCategoryLink, "category_id", MovieCategoryRecord),
}

MOVIE_COLUMNS = frozenset(MovieRecord.model_fields) - {"id", "created_at", "updated_at"}


@contextmanager
def _guard(action: str) -> Iterator[None]:
    """Translate database failures into item-level persistence errors."""

    try:
        yield
    except PersistenceError:
        raise
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Failed to {action}: {exc.__class__.__name__}: {exc}") from exc


class CatalogStore:
    """Append-only catalog writes keyed by natural keys.

    Every call commits on its own; a failure part-way through a movie leaves
    the earlier writes in place.
    """

    def __init__(self, engine) -> None:
        self._engine = engine
        self._lock = Lock()

    # ------------------------------------------------------------------ #
    # Gateway operations
    # ------------------------------------------------------------------ #

    def find_movie_by_slug(self, slug: str) -> str | None:
        with _guard("look up movie"), Session(self._engine) as session:
            return session.exec(select(MovieRecord.id).where(MovieRecord.slug == slug)).first()

    def insert_movie(self, fields: dict[str, Any]) -> str:
        payload = {key: value for key, value in fields.items() if key in MOVIE_COLUMNS}
        if not payload.get("slug"):
            raise PersistenceError("Cannot insert a movie without a slug")
        with _guard("insert movie"), self._lock, Session(self._engine) as session:
            record = MovieRecord(**payload)
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                existing = session.exec(
                    select(MovieRecord.id).where(MovieRecord.slug == payload["slug"])
                ).first()
                if existing is None:
                    raise
                return existing
            return record.id

    def upsert_by_slug(self, table: str, slug: str, fields: dict[str, Any]) -> str:
        """Return the id for ``slug`` in ``table``, inserting the row if absent.

        Fields of an existing row are left as they are.
        """

        model = ENTITY_TABLES.get(table)
        if model is None:
            raise PersistenceError(f"Unknown entity table: {table}")
        with _guard(f"upsert {table}"), self._lock, Session(self._engine) as session:
            existing = session.exec(select(model.id).where(model.slug == slug)).first()
            if existing is not None:
                return existing
            record = model(slug=slug, name=fields.get("name") or slug)
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                # Another writer created the slug first.
                session.rollback()
                existing = session.exec(select(model.id).where(model.slug == slug)).first()
                if existing is None:
                    raise
                return existing
            return record.id

    def upsert_year(self, year: int) -> int:
        with _guard("upsert year"), self._lock, Session(self._engine) as session:
            if session.get(YearRecord, year) is None:
                session.add(YearRecord(year=year))
                session.commit()
            return year

    def upsert_association(self, join_table: str, movie_id: str, entity_id: str) -> None:
        entry = JOIN_TABLES.get(join_table)
        if entry is None:
            raise PersistenceError(f"Unknown join table: {join_table}")
        link_model, column, _ = entry
        entity_column = getattr(link_model, column)
        with _guard(f"upsert {join_table}"), self._lock, Session(self._engine) as session:
            existing = session.exec(
                select(link_model.id)
                .where(link_model.movie_id == movie_id)
                .where(entity_column == entity_id)
            ).first()
            if existing is None:
                session.add(link_model(movie_id=movie_id, **{column: entity_id}))
                session.commit()

    def list_existing_episode_keys(self, movie_id: str) -> set[tuple[str, str]]:
        with _guard("list episodes"), Session(self._engine) as session:
            rows = session.exec(
                select(EpisodeRecord.server_name, EpisodeRecord.slug).where(
                    EpisodeRecord.movie_id == movie_id
                )
            ).all()
            return {(server_name, slug) for server_name, slug in rows}

    def insert_episodes_batch(self, rows: list[dict[str, Any]], chunk_size: int = 100) -> list[int]:
        """Insert ``rows`` in chunks, one transaction per chunk; return chunk sizes."""

        if chunk_size < 1:
            raise PersistenceError("chunk_size must be positive")
        batches: list[int] = []
        for start in range(0, len(rows), chunk_size):
            chunk = rows[start : start + chunk_size]
            with _guard("insert episodes"), Session(self._engine) as session:
                session.add_all(EpisodeRecord(**row) for row in chunk)
                session.commit()
            batches.append(len(chunk))
        return batches

    # ------------------------------------------------------------------ #
    # Catalog reads
    # ------------------------------------------------------------------ #

    def list_movies(
        self,
        *,
        query: str | None = None,
        movie_type: str | None = None,
        year: int | None = None,
        page: int = 1,
        page_size: int = 25,
    ) -> MovieListModel:
        filters = []
        if query:
            pattern = f"%{query.lower()}%"
            filters.append(
                func.lower(MovieRecord.name).like(pattern) | func.lower(MovieRecord.origin_name).like(pattern)
            )
        if movie_type:
            filters.append(MovieRecord.type == movie_type)
        if year is not None:
            filters.append(MovieRecord.year == year)

        count_statement = select(func.count()).select_from(MovieRecord)
        items_statement = select(MovieRecord)
        for condition in filters:
            count_statement = count_statement.where(condition)
            items_statement = items_statement.where(condition)
        items_statement = (
            items_statement.order_by(MovieRecord.created_at.desc(), MovieRecord.slug)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )

        with Session(self._engine) as session:
            total = session.exec(count_statement).one()
            records = session.exec(items_statement).all()
            items = [_to_movie_model(record) for record in records]
        return MovieListModel(items=items, total=total, page=page, page_size=page_size)

    def get_movie(self, slug: str) -> MovieDetailModel | None:
        with Session(self._engine) as session:
            record = session.exec(select(MovieRecord).where(MovieRecord.slug == slug)).first()
            if record is None:
                return None

            episodes = session.exec(
                select(EpisodeRecord)
                .where(EpisodeRecord.movie_id == record.id)
                .order_by(EpisodeRecord.server_name, EpisodeRecord.slug)
            ).all()
            servers: dict[str, ServerModel] = {}
            for episode in episodes:
                server = servers.setdefault(episode.server_name, ServerModel(server_name=episode.server_name))
                server.episodes.append(
                    EpisodeModel(
                        name=episode.name,
                        slug=episode.slug,
                        filename=episode.filename,
                        link_embed=episode.link_embed,
                        link_m3u8=episode.link_m3u8,
                        link_mp4=episode.link_mp4,
                    )
                )

            base = _to_movie_model(record)
            return MovieDetailModel(
                **base.model_dump(),
                content=record.content,
                genres=_related(session, "movie_genres", record.id),
                countries=_related(session, "movie_countries", record.id),
                categories=_related(session, "movie_category_map", record.id),
                actors=_related(session, "movie_actors", record.id),
                directors=_related(session, "movie_directors", record.id),
                servers=list(servers.values()),
            )

    def count_episodes(self, movie_id: str) -> int:
        with Session(self._engine) as session:
            return session.exec(
                select(func.count()).select_from(EpisodeRecord).where(EpisodeRecord.movie_id == movie_id)
            ).one()

    def metrics(self) -> CatalogMetricsModel:
        with Session(self._engine) as session:
            counts = {
                name: session.exec(select(func.count()).select_from(model)).one()
                for name, model in (
                    ("movies", MovieRecord),
                    ("episodes", EpisodeRecord),
                    ("genres", GenreRecord),
                    ("countries", CountryRecord),
                    ("actors", ActorRecord),
                    ("directors", DirectorRecord),
                )
            }
            type_rows = session.exec(
                select(MovieRecord.type, func.count()).group_by(MovieRecord.type).order_by(MovieRecord.type)
            ).all()
        return CatalogMetricsModel(**counts, type_counts={movie_type: count for movie_type, count in type_rows})


def _related(session: Session, join_table: str, movie_id: str) -> list[TermModel]:
    link_model, column, entity_model = JOIN_TABLES[join_table]
    records = session.exec(
        select(entity_model)
        .join(link_model, getattr(link_model, column) == entity_model.id)
        .where(link_model.movie_id == movie_id)
        .order_by(entity_model.name)
    ).all()
    return [TermModel(id=record.id, name=record.name, slug=record.slug) for record in records]


def _to_movie_model(record: MovieRecord) -> MovieModel:
    """Convert a movie record into the list response model."""

    return MovieModel(
        id=record.id,
        slug=record.slug,
        name=record.name,
        origin_name=record.origin_name,
        type=record.type,
        status=record.status,
        year=record.year,
        quality=record.quality,
        lang=record.lang,
        time=record.time,
        episode_current=record.episode_current,
        episode_total=record.episode_total,
        poster_url=record.poster_url,
        thumb_url=record.thumb_url,
        trailer_url=record.trailer_url,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )
