from __future__ import annotations

import logging
from pathlib import Path

import typer

from photorama import load_config
from photorama.config import AppConfig
from photorama.errors import FetchError, MissingImageURLError, StoreError
from photorama.fetch import FetchCoordinator
from photorama.schemas import FeedKind, Photo
from photorama.storage import ImageCache, MetadataStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = typer.Typer(help="Photorama CLI")
debug_app = typer.Typer(help="Debug commands")
app.add_typer(debug_app, name="debug")

_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    help="Config file path (JSON or YAML).",
    exists=True,
    dir_okay=False,
    readable=True,
)
_DB_PATH_OPTION = typer.Option(None, "--db-path", help="SQLite DB file path.")
_CACHE_DIR_OPTION = typer.Option(None, "--cache-dir", help="Image cache directory.")
_API_KEY_ENV_OPTION = typer.Option(
    None,
    "--api-key-env",
    help="Environment variable name for the Flickr API key.",
)


@app.command("fetch")
def fetch_listing(
    kind: FeedKind = typer.Argument(FeedKind.INTERESTING, help="Feed to fetch."),
    config_path: Path | None = _CONFIG_OPTION,
    db_path: Path | None = _DB_PATH_OPTION,
    cache_dir: Path | None = _CACHE_DIR_OPTION,
    api_key_env: str | None = _API_KEY_ENV_OPTION,
) -> None:
    """Fetch a Flickr feed and store its photos into SQLite."""
    config = _resolve_config(config_path, db_path=db_path, cache_dir=cache_dir)
    with _open_coordinator(config, api_key_env) as coordinator:
        try:
            photos = coordinator.fetch_listing(kind).result()
        except FetchError as exc:
            typer.echo(f"fetch failed ({exc.kind}): {exc.cause}", err=True)
            raise typer.Exit(code=1) from exc

    _echo_photos(photos)
    typer.echo(f"stored {len(photos)} photos (feed={kind.value})")


@app.command("photos")
def list_photos(
    favorites: bool = typer.Option(False, "--favorites", help="Only list favorites."),
    config_path: Path | None = _CONFIG_OPTION,
    db_path: Path | None = _DB_PATH_OPTION,
) -> None:
    """List stored photos by date taken."""
    config = _resolve_config(config_path, db_path=db_path)
    store = MetadataStore(config.storage.db_path)
    photos = store.fetch_favorites() if favorites else store.fetch_all()
    _echo_photos(photos)
    typer.echo(f"{len(photos)} photos")


@app.command("tags")
def list_tags(
    config_path: Path | None = _CONFIG_OPTION,
    db_path: Path | None = _DB_PATH_OPTION,
) -> None:
    """List tags with their photo counts."""
    config = _resolve_config(config_path, db_path=db_path)
    store = MetadataStore(config.storage.db_path)
    for tag in store.fetch_all_tags():
        typer.echo(f"{tag.name}\t{len(tag.photo_ids)}")


@app.command("favorite")
def favorite(
    photo_id: str = typer.Argument(..., help="Photo identifier."),
    off: bool = typer.Option(False, "--off", help="Remove the favorite mark."),
    config_path: Path | None = _CONFIG_OPTION,
    db_path: Path | None = _DB_PATH_OPTION,
) -> None:
    """Mark or unmark a photo as favorite."""
    config = _resolve_config(config_path, db_path=db_path)
    store = MetadataStore(config.storage.db_path)
    try:
        photo = store.set_favorite(photo_id, not off)
        store.save_if_dirty()
    except StoreError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"{photo.photo_id} favorite={photo.favorite}")


@app.command("view")
def view_photo(
    photo_id: str = typer.Argument(..., help="Photo identifier."),
    config_path: Path | None = _CONFIG_OPTION,
    db_path: Path | None = _DB_PATH_OPTION,
    cache_dir: Path | None = _CACHE_DIR_OPTION,
    api_key_env: str | None = _API_KEY_ENV_OPTION,
) -> None:
    """Count a view of a photo and download its image into the cache."""
    config = _resolve_config(config_path, db_path=db_path, cache_dir=cache_dir)
    with _open_coordinator(config, api_key_env) as coordinator:
        try:
            photo = coordinator.increment_view_count(photo_id).result()
            image = coordinator.fetch_image(photo).result()
        except (FetchError, MissingImageURLError, StoreError) as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc

    path = coordinator.cache.path_for(photo.photo_id)
    typer.echo(
        f"{photo.photo_id} views={photo.view_count} "
        f"{image.format} {image.width}x{image.height} -> {path}"
    )


@debug_app.command("storage")
def debug_storage(
    config_path: Path | None = _CONFIG_OPTION,
    db_path: Path | None = _DB_PATH_OPTION,
    cache_dir: Path | None = _CACHE_DIR_OPTION,
) -> None:
    """Create the metadata store and image cache directory."""
    config = _resolve_config(config_path, db_path=db_path, cache_dir=cache_dir)
    store = MetadataStore(config.storage.db_path)
    cache = ImageCache(config.caching.directory)
    typer.echo(
        f"storage ok db={store.db_path} photos={len(store.fetch_all())} cache={cache.directory}"
    )


def _resolve_config(
    config_path: Path | None,
    *,
    db_path: Path | None = None,
    cache_dir: Path | None = None,
) -> AppConfig:
    config = load_config(config_path) if config_path is not None else AppConfig()
    if db_path is not None:
        config.storage.db_path = str(db_path)
    if cache_dir is not None:
        config.caching.directory = str(cache_dir)
    return config


def _open_coordinator(config: AppConfig, api_key_env: str | None) -> FetchCoordinator:
    try:
        return FetchCoordinator.from_config(config, api_key_env=api_key_env)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


def _echo_photos(photos: list[Photo]) -> None:
    for photo in photos:
        taken = photo.date_taken.isoformat() if photo.date_taken else "-"
        marker = "*" if photo.favorite else " "
        typer.echo(f"{marker} {photo.photo_id}\t{taken}\t{photo.view_count}\t{photo.title}")


if __name__ == "__main__":
    app()
