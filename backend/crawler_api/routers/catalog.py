"""Read-only catalog endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_catalog_store
from ..schemas import CatalogMetricsModel, MovieDetailModel, MovieListModel, MovieType
from ..stores.catalog_store import CatalogStore

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/movies", response_model=MovieListModel)
def list_movies(
    query: str | None = Query(default=None, description="Optional name search term."),
    movie_type: MovieType | None = Query(
        default=None,
        alias="type",
        description="Filter results to a single movie type.",
    ),
    year: int | None = Query(default=None, ge=1800, le=3000),
    page: int = Query(default=1, ge=1, description="Page number starting at 1."),
    page_size: int = Query(
        default=25,
        ge=1,
        le=100,
        description="Number of items to return per page.",
    ),
    store: CatalogStore = Depends(get_catalog_store),
) -> MovieListModel:
    """Return paginated catalog movies matching the provided filters."""

    return store.list_movies(query=query, movie_type=movie_type, year=year, page=page, page_size=page_size)


@router.get("/movies/{slug}", response_model=MovieDetailModel)
def get_movie(slug: str, store: CatalogStore = Depends(get_catalog_store)) -> MovieDetailModel:
    """Return a movie with its relations and episodes grouped by server."""

    movie = store.get_movie(slug)
    if movie is None:
        raise HTTPException(status_code=404, detail="Movie not found")
    return movie


@router.get("/metrics", response_model=CatalogMetricsModel)
def catalog_metrics(store: CatalogStore = Depends(get_catalog_store)) -> CatalogMetricsModel:
    """Return aggregate catalog counts."""

    return store.metrics()
