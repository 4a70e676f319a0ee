from __future__ import annotations

import asyncio
import io
import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Mapping
from urllib.parse import unquote, urlsplit

import aiohttp
import yaml
from dotenv import dotenv_values

from propbind.config.models import BindingOptions
from propbind.core.errors import SourceUnreachable
from propbind.loaders.interfaces import SourceFetcher

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = (".yaml", ".yml")

_RETRYABLE_HTTP_ERRORS: tuple[type[BaseException], ...] = (
    aiohttp.ClientConnectorError,
    aiohttp.ClientOSError,
    aiohttp.ServerDisconnectedError,
    asyncio.TimeoutError,
    ConnectionResetError,
)


def uri_scheme(uri: str) -> str:
    scheme = urlsplit(uri).scheme.lower()
    # "C:\\app\\config.properties" is a Windows path, not a URI
    if len(scheme) == 1:
        return ""
    return scheme


def _yaml_scalar_to_text(source: str, key: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise SourceUnreachable(
        source,
        f"nested value for key '{key}' ({type(value).__name__}); only flat mappings of scalars are supported",
    )


def parse_properties_text(text: str, *, source: str, name: str) -> dict[str, str]:
    """
    Parse the textual content of one source into a flat mapping.

    YAML content is chosen by the .yaml/.yml suffix of name; anything else is read as
    key=value lines with python-dotenv, without variable interpolation.
    """
    if PurePosixPath(name).suffix.lower() in _YAML_SUFFIXES:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise SourceUnreachable(source, f"invalid YAML: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise SourceUnreachable(source, f"top-level YAML must be a mapping, got: {type(data).__name__}")
        return {str(k): _yaml_scalar_to_text(source, str(k), v) for k, v in data.items()}

    values = dotenv_values(stream=io.StringIO(text), interpolate=False)
    return {k: "" if v is None else v for k, v in values.items()}


def _uri_to_path(uri: str) -> Path:
    parts = urlsplit(uri)
    if uri_scheme(uri) != "file":
        return Path(uri).expanduser()
    raw = unquote(parts.path)
    if parts.netloc and parts.netloc != "localhost":
        raw = f"//{parts.netloc}{raw}"
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class FileFetcher:
    async def fetch(self, uri: str) -> Mapping[str, str]:
        path = _uri_to_path(uri)
        if not path.is_file():
            raise SourceUnreachable(uri, f"file not found: {path}")
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceUnreachable(uri, f"cannot read file: {exc}") from exc
        values = parse_properties_text(text, source=uri, name=path.name)
        logger.debug("Read file source. path=%s keys=%s", path, len(values))
        return values


@dataclass(frozen=True, slots=True)
class HttpFetcher:
    timeout_seconds: float = 10
    max_retries: int = 3
    retry_backoff_seconds: float = 0.5

    async def fetch(self, uri: str) -> Mapping[str, str]:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            text = await self._download(session, uri)
        values = parse_properties_text(text, source=uri, name=urlsplit(uri).path)
        logger.debug("Read HTTP source. url=%s keys=%s", uri, len(values))
        return values

    async def _download(self, session: aiohttp.ClientSession, uri: str) -> str:
        last_error: BaseException | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                async with session.get(uri) as response:
                    if response.status != 200:
                        raise SourceUnreachable(uri, f"HTTP status {response.status}")
                    return await response.text()
            except _RETRYABLE_HTTP_ERRORS as exc:
                last_error = exc
                if attempt >= self.max_retries:
                    break
                delay_seconds = self.retry_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "Retrying source download. attempt=%s/%s delay_seconds=%s url=%s error=%s",
                    attempt,
                    self.max_retries,
                    delay_seconds,
                    uri,
                    type(exc).__name__,
                )
                await asyncio.sleep(delay_seconds)
            except SourceUnreachable:
                raise
            except (aiohttp.ClientError, UnicodeDecodeError) as exc:
                raise SourceUnreachable(uri, f"download failed: {type(exc).__name__}: {exc}") from exc

        raise SourceUnreachable(
            uri,
            f"download failed after retries: {type(last_error).__name__ if last_error else 'unknown'}",
        ) from last_error


@dataclass(frozen=True, slots=True)
class EnvFetcher:
    """Reads the process environment; "env:APP_" keeps only APP_* variables, prefix stripped."""

    async def fetch(self, uri: str) -> Mapping[str, str]:
        prefix = uri.split(":", 1)[1] if ":" in uri else ""
        if not prefix:
            return dict(os.environ)
        return {name[len(prefix) :]: value for name, value in os.environ.items() if name.startswith(prefix) and len(name) > len(prefix)}


def get_fetcher(uri: str, options: BindingOptions) -> SourceFetcher:
    scheme = uri_scheme(uri)
    if scheme in ("", "file"):
        return FileFetcher()
    if scheme in ("http", "https"):
        return HttpFetcher(timeout_seconds=options.http_timeout_seconds, max_retries=options.http_max_retries)
    if scheme == "env":
        return EnvFetcher()
    raise SourceUnreachable(uri, f"unsupported source scheme: {scheme}")
