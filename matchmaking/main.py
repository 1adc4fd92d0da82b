from __future__ import annotations

import asyncio
import math
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich import print
from rich.table import Table

from .errors import InvalidRequestError, NotFoundError
from .factory import build_index, build_services
from .index_sync import sync_embeddings
from .ingest import load_stores
from .logging_setup import configure_logging
from .matching_models import RecommendedUser
from .settings import Settings, get_settings


app = typer.Typer(help="Matchmaking CLI")


def _settings(data_dir: Optional[Path]) -> Settings:
	load_dotenv()
	settings = get_settings()
	if data_dir is not None:
		settings = settings.model_copy(update={"data_dir": data_dir})
	configure_logging(json_logs=settings.is_production, log_level="DEBUG" if settings.debug else "WARNING")
	return settings


@app.command()
def recommend(
	user_id: str = typer.Argument(..., help="Requester user id"),
	page: int = typer.Option(1, help="1-based page number"),
	page_size: int = typer.Option(2, help="Candidates per page"),
	data_dir: Optional[Path] = typer.Option(None, help="Directory with users/tags/thoughts CSVs"),
):
	"""Rank candidates for USER_ID and show one page."""
	settings = _settings(data_dir)

	async def _run():
		services = await build_services(settings)
		return await services.pipeline.get_candidates(user_id, page, page_size)

	try:
		result = asyncio.run(_run())
	except (NotFoundError, InvalidRequestError) as e:
		print(f"[red]{e}[/red]")
		raise typer.Exit(code=1)

	table = Table("user", "shared tags", "similarity", "distance", "score")
	for m in result.data:
		distance = "Unknown" if math.isinf(m.proximity_km) else f"{m.proximity_km:.2f} km"
		table.add_row(
			m.user.display_name,
			", ".join(str(t) for t in m.shared_tags) or "-",
			f"{m.similarity:.3f}",
			distance,
			f"{m.score:.3f}",
		)
	print(table)
	print(
		f"Page {result.page} (size {result.page_size}) of {result.total_count} candidates"
		f" - has more: {result.has_more}"
	)


@app.command()
def explain(
	requester_id: str = typer.Argument(..., help="User receiving the recommendation"),
	recommended_id: str = typer.Argument(..., help="Recommended user"),
	data_dir: Optional[Path] = typer.Option(None, help="Directory with users/tags/thoughts CSVs"),
):
	"""Explain why RECOMMENDED_ID was suggested to REQUESTER_ID."""
	settings = _settings(data_dir)

	async def _run() -> Optional[str]:
		services = await build_services(settings)
		recommended = await services.user_store.get_by_id(recommended_id)
		if recommended is None:
			return None
		target = RecommendedUser(id=recommended.id, username=recommended.username, nickname=recommended.nickname)
		return await services.explainer.explain(target, requester_id)

	text = asyncio.run(_run())
	if text is None:
		print(f"[red]User not found: {recommended_id}[/red]")
		raise typer.Exit(code=1)
	print(text)


@app.command("sync-index")
def sync_index(
	data_dir: Optional[Path] = typer.Option(None, help="Directory with users/tags/thoughts CSVs"),
):
	"""Upsert each user's latest valid thought embedding into the configured index."""
	settings = _settings(data_dir)
	user_store, _, thought_store = load_stores(settings.data_dir)

	async def _run() -> int:
		index = await build_index(settings, user_store, thought_store)
		if not settings.pinecone_enabled:
			# the in-memory index was filled while being built
			return len(index)  # type: ignore[arg-type]
		return await sync_embeddings(index, thought_store, [u.id for u in user_store.all()])

	written = asyncio.run(_run())
	print(f"[green]Synced {written} embeddings[/green]")


@app.command()
def serve(
	host: str = typer.Option("0.0.0.0", help="Bind address"),
	port: int = typer.Option(8080, help="Port"),
):
	"""Run the HTTP API."""
	import uvicorn

	load_dotenv()
	uvicorn.run("matchmaking.api:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
	app()
