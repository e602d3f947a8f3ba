"""CLI entrypoint for Readmark."""

from __future__ import annotations

import json
import os
from typing import Optional

import requests
import typer

app = typer.Typer(name="readmark", help="Readmark command-line interface")
books_app = typer.Typer(name="books", help="Manage books")
highlights_app = typer.Typer(name="highlights", help="Manage highlights")
app.add_typer(books_app, name="books")
app.add_typer(highlights_app, name="highlights")

DEFAULT_HOST = "http://127.0.0.1:8000"
HOST_OPTION = typer.Option(None, "--host", help="Override backend host")
KEY_OPTION = typer.Option(None, "--api-key", help="API key (defaults to RDMK_API_KEY)")


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("RDMK_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _auth_headers(api_key: Optional[str]) -> dict[str, str]:
    key = api_key or os.environ.get("RDMK_API_KEY")
    if not key:
        typer.echo("An API key is required: pass --api-key or set RDMK_API_KEY", err=True)
        raise typer.Exit(code=2)
    return {"Authorization": f"Bearer {key}"}


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _print(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@app.command()
def search(
    query: str = typer.Argument(..., help="Question or phrase to look up"),
    ai: bool = typer.Option(True, "--ai/--no-ai", help="Ask the LLM for a grounded answer"),
    host: Optional[str] = HOST_OPTION,
    api_key: Optional[str] = KEY_OPTION,
) -> None:
    """Search highlights and print the answer and matching quotes."""
    resp = _request(
        "POST",
        "/search",
        host=host,
        headers=_auth_headers(api_key),
        json={"query": query, "useAI": ai},
    )
    data = resp.json()["data"]
    if data.get("aiAnswer"):
        typer.echo(data["aiAnswer"])
        typer.echo("")
    if data.get("lexicalOnly"):
        typer.echo("(semantic search unavailable, showing text matches only)", err=True)
    for idx, item in enumerate(data["highlights"], start=1):
        title = (item.get("book") or {}).get("title", "?")
        typer.echo(f"[{idx}] {title}: {item['content']}")
    if not data["highlights"]:
        typer.echo("No matching highlights.")


@app.command()
def register(
    name: str = typer.Argument(..., help="Display name"),
    email: str = typer.Argument(..., help="Account email"),
    host: Optional[str] = HOST_OPTION,
) -> None:
    """Create an account and print its first API key."""
    resp = _request("POST", "/auth/register", host=host, json={"name": name, "email": email})
    _print(resp.json())


@books_app.command("list")
def list_books(host: Optional[str] = HOST_OPTION, api_key: Optional[str] = KEY_OPTION) -> None:
    """List books."""
    resp = _request("GET", "/books", host=host, headers=_auth_headers(api_key))
    _print(resp.json())


@books_app.command("add")
def add_book(
    title: str = typer.Argument(..., help="Book title"),
    author: Optional[str] = typer.Option(None, "--author", help="Author name"),
    host: Optional[str] = HOST_OPTION,
    api_key: Optional[str] = KEY_OPTION,
) -> None:
    """Register a book."""
    resp = _request(
        "POST",
        "/books",
        host=host,
        headers=_auth_headers(api_key),
        json={"title": title, "author": author},
    )
    _print(resp.json())


@highlights_app.command("add")
def add_highlight(
    book_id: str = typer.Argument(..., help="Book identifier"),
    content: str = typer.Argument(..., help="Quoted passage"),
    note: Optional[str] = typer.Option(None, "--note", help="Personal note"),
    page: Optional[int] = typer.Option(None, "--page", min=1, help="Page number"),
    chapter: Optional[str] = typer.Option(None, "--chapter", help="Chapter label"),
    host: Optional[str] = HOST_OPTION,
    api_key: Optional[str] = KEY_OPTION,
) -> None:
    """Save a highlight."""
    payload: dict[str, object] = {"bookId": book_id, "content": content}
    if note:
        payload["note"] = note
    if page is not None:
        payload["pageNumber"] = page
    if chapter:
        payload["chapter"] = chapter
    resp = _request("POST", "/highlights", host=host, headers=_auth_headers(api_key), json=payload)
    _print(resp.json())


if __name__ == "__main__":
    app()
