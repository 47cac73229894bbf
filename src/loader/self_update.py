"""
Self-updating loader for the bridge server module.

Keeps a downloaded copy of the bridge server in a per-user cache directory
together with a version marker, and only ever executes a copy that passed
structural validation.

Cache check, in order:
- no artifact on disk: download
- artifact older than the TTL: download
- version marker present and the remote version differs: download
- remote version probe fails: keep the cache

Any failure (download, validation, or an exception escaping the executed
module) purges the artifact and the marker; the next run starts clean.

The artifact is only the bridge wiring module; it imports everything else
from the installed ``bridge`` package. When its ``REQUIRED_API_LEVEL`` does
not match ``bridge.API_LEVEL`` the installed server runs instead and the
cached copy is kept, so an incompatible release is not re-downloaded on
every start.
"""

import importlib.util
import inspect
import os
import re
import shutil
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Optional, Tuple

import httpx

from common.config import Config, UpdaterConfig
from common.logging import TimedLogger, get_logger
from bridge import API_LEVEL
from bridge.http_client import USER_AGENT
from bridge.server import main as installed_main

logger = get_logger(__name__)

ENTRY_POINT = "main"

API_LEVEL_PATTERN = re.compile(r"^REQUIRED_API_LEVEL\s*=\s*(\d+)\s*$", re.MULTILINE)


class UpdateError(Exception):
    """Raised when the bridge module cannot be fetched, validated or run."""


class CacheState(str, Enum):
    """Outcome of the cache check."""

    FRESH = "fresh"
    STALE = "stale"
    MISSING = "missing"


@dataclass(frozen=True)
class CacheEntry:
    """A validated artifact on disk."""

    local_path: Path
    version: Optional[str]
    last_written_at: datetime


def _write_atomic(path: Path, data: bytes) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_bytes(data)
    os.replace(tmp_path, path)


def _unlink(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def _takes_argument(func: Callable[..., Any]) -> bool:
    try:
        return bool(inspect.signature(func).parameters)
    except (TypeError, ValueError):
        return False


async def _invoke(entry_point: Callable[..., Any], config: Optional[Config]) -> None:
    if config is not None and _takes_argument(entry_point):
        result = entry_point(config)
    else:
        result = entry_point()
    if inspect.isawaitable(result):
        await result


class SelfUpdateLoader:
    """
    Fetch, validate and execute the bridge server module.

    Not safe for two processes sharing one cache directory: there is no
    file lock.
    """

    def __init__(
        self,
        config: UpdaterConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        fallback: Optional[Callable[..., Any]] = None,
    ):
        self.config = config
        self.fallback = fallback or installed_main
        self.artifact_path = config.artifact_path
        self.version_path = config.version_path
        self.partial_path = self.artifact_path.with_name(self.artifact_path.name + ".part")
        self.client = httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=config.probe_timeout,
            follow_redirects=True,
            transport=transport,
        )

    # Cache inspection

    def ensure_cache_dir(self) -> None:
        if not self.config.cache_dir.exists():
            self.config.cache_dir.mkdir(parents=True, exist_ok=True)
            logger.info(event="cache_dir_created", path=str(self.config.cache_dir))

    def read_local_version(self) -> Optional[str]:
        try:
            return self.version_path.read_text(encoding="utf-8").strip() or None
        except FileNotFoundError:
            return None

    async def fetch_remote_version(self) -> str:
        """
        Probe the latest remote version.

        The GitHub commits API answers JSON with a ``sha``; its first eight
        characters are the version. Any other body is used as plain text.
        """
        try:
            response = await self.client.get(self.config.version_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpdateError(f"Version probe failed: {e}")

        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and isinstance(data.get("sha"), str):
            version = data["sha"][:8]
        else:
            version = response.text.strip()

        if not version:
            raise UpdateError("Version probe returned an empty version")
        return version

    async def check_cache(self) -> Tuple[CacheState, Optional[str]]:
        """
        Decide whether the cached artifact can be used.

        Returns:
            The cache state and the remote version when it was probed.
        """
        if not self.artifact_path.exists():
            return CacheState.MISSING, None

        age = time.time() - self.artifact_path.stat().st_mtime
        if age > self.config.max_age_seconds:
            logger.info(event="cache_expired", age_seconds=round(age))
            return CacheState.STALE, None

        local_version = self.read_local_version()
        if local_version is None:
            return CacheState.FRESH, None

        try:
            remote_version = await self.fetch_remote_version()
        except UpdateError as e:
            logger.warning(event="version_check_failed", error=str(e), using="cache")
            return CacheState.FRESH, None

        if remote_version != local_version:
            logger.info(event="new_version_available", local=local_version, remote=remote_version)
            return CacheState.STALE, remote_version

        return CacheState.FRESH, remote_version

    def current_entry(self) -> CacheEntry:
        mtime = self.artifact_path.stat().st_mtime
        return CacheEntry(
            local_path=self.artifact_path,
            version=self.read_local_version(),
            last_written_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
        )

    # Download, validation, purge

    async def download(self) -> None:
        """Stream the artifact to a partial file, then swap it into place."""
        with TimedLogger(logger, "artifact_downloaded", url=self.config.code_url):
            try:
                async with self.client.stream("GET", self.config.code_url) as response:
                    if response.status_code != 200:
                        raise UpdateError(f"Download failed: HTTP {response.status_code}")
                    with open(self.partial_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
            except httpx.HTTPError as e:
                _unlink(self.partial_path)
                raise UpdateError(f"Download failed: {e}")
            except (UpdateError, OSError):
                _unlink(self.partial_path)
                raise

        os.replace(self.partial_path, self.artifact_path)

    def validate(self) -> bool:
        """Check the downloaded artifact for required markers and a size floor."""
        try:
            size = self.artifact_path.stat().st_size
            content = self.artifact_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(event="artifact_validation_failed", reason=str(e))
            return False

        for marker in self.config.required_markers:
            if marker not in content:
                logger.error(event="artifact_validation_failed", reason="missing_marker", marker=marker)
                return False

        if size < self.config.min_size_bytes:
            logger.error(
                event="artifact_validation_failed",
                reason="too_small",
                size=size,
                min_size=self.config.min_size_bytes,
            )
            return False

        logger.info(event="artifact_validated", size=size)
        return True

    def purge(self) -> None:
        """Delete the artifact, any partial download and the version marker."""
        for path in (self.artifact_path, self.partial_path, self.version_path):
            _unlink(path)
        logger.info(event="cache_purged", path=str(self.config.cache_dir))

    async def _write_version(self, version: Optional[str]) -> None:
        if version is None:
            try:
                version = await self.fetch_remote_version()
            except UpdateError as e:
                logger.warning(event="version_marker_skipped", error=str(e))
                return
        _write_atomic(self.version_path, version.encode("utf-8"))

    async def ensure_current(self) -> CacheEntry:
        """
        Make sure a validated artifact is on disk and return it.

        Raises:
            UpdateError: no download URL is configured, or download or
                validation failed; in the latter case the cache has been purged.
        """
        if not self.config.code_url:
            raise UpdateError("updater.code_url is not configured")

        self.ensure_cache_dir()
        state, remote_version = await self.check_cache()

        if state is CacheState.FRESH:
            logger.info(event="using_cached_artifact")
            return self.current_entry()

        logger.info(event="downloading_artifact", state=state.value)
        try:
            await self.download()
        except (UpdateError, OSError) as e:
            self.purge()
            raise UpdateError(str(e)) from e

        if not self.validate():
            self.purge()
            raise UpdateError("Downloaded bridge module failed validation")

        await self._write_version(remote_version)
        return self.current_entry()

    # Execution

    def load_module(self, entry: CacheEntry) -> ModuleType:
        """Instantiate the artifact as a brand-new module object."""
        name = f"prompthub_bridge_{uuid.uuid4().hex}"
        spec = importlib.util.spec_from_file_location(name, entry.local_path)
        if spec is None or spec.loader is None:
            raise UpdateError(f"Cannot load module from {entry.local_path}")

        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    def required_api_level(self, entry: CacheEntry) -> Optional[int]:
        """The ``REQUIRED_API_LEVEL`` the artifact declares, if any."""
        match = API_LEVEL_PATTERN.search(entry.local_path.read_text(encoding="utf-8"))
        return int(match.group(1)) if match else None

    def is_compatible(self, entry: CacheEntry) -> bool:
        required = self.required_api_level(entry)
        if required != API_LEVEL:
            logger.warning(
                event="artifact_incompatible",
                required_api_level=required,
                installed_api_level=API_LEVEL,
                version=entry.version,
            )
            return False
        return True

    async def execute(self, entry: CacheEntry, config: Optional[Config] = None) -> None:
        """
        Load the artifact fresh and hand control to its ``main()``.

        ``config`` is passed on when ``main`` takes an argument, so the
        bridge runs with the configuration the loader was started with.
        """
        module = self.load_module(entry)
        entry_point = getattr(module, ENTRY_POINT, None)
        if not callable(entry_point):
            raise UpdateError(f"Bridge module has no callable {ENTRY_POINT}()")

        logger.info(event="bridge_starting", version=entry.version)
        await _invoke(entry_point, config)

    async def run(self, config: Optional[Config] = None) -> None:
        """
        Ensure a current artifact, then execute it.

        An artifact written against another API level is kept in the cache
        and the installed bridge runs in its place.

        Raises:
            UpdateError: the update failed.
            Exception: whatever escaped the downloaded bridge module. The
                cache is purged before either propagates.
        """
        try:
            entry = await self.ensure_current()
        finally:
            await self.client.aclose()

        if not self.is_compatible(entry):
            logger.info(event="bridge_starting", version="installed")
            await _invoke(self.fallback, config)
            return

        try:
            await self.execute(entry, config)
        except Exception:
            self.purge()
            raise

    @staticmethod
    def clear_cache(cache_dir: Path) -> bool:
        """Remove the whole cache directory. Returns False when there was none."""
        if not cache_dir.exists():
            return False
        shutil.rmtree(cache_dir)
        return True
