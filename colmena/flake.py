"""Nix Flake utilities."""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .errors import BadOutput, IoError, from_returncode

_EXPERIMENTAL = ("--extra-experimental-features", "nix-command flakes")


@dataclass(frozen=True)
class FlakeMetadata:
    """The output of ``nix flake metadata --json``."""

    resolved_url: str
    url: str


def parse_flake_metadata(data: Union[bytes, str]) -> FlakeMetadata:
    """Parse the JSON metadata of a flake, raising BadOutput if it is invalid."""
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    try:
        parsed = json.loads(text)
        resolved_url = parsed["resolvedUrl"]
        url = parsed["url"]
    except (ValueError, TypeError, KeyError):
        raise BadOutput(text) from None
    if not isinstance(resolved_url, str) or not isinstance(url, str):
        raise BadOutput(text)
    return FlakeMetadata(resolved_url=resolved_url, url=url)


async def _resolve(flake: str) -> FlakeMetadata:
    try:
        process = await asyncio.create_subprocess_exec(
            "nix",
            "flake",
            "metadata",
            "--json",
            *_EXPERIMENTAL,
            flake,
            stdout=asyncio.subprocess.PIPE,
        )
        stdout, _ = await process.communicate()
    except OSError as error:
        raise IoError(error) from error

    if process.returncode != 0:
        raise from_returncode(process.returncode)
    return parse_flake_metadata(stdout)


@dataclass(frozen=True)
class Flake:
    """A Nix Flake, optionally backed by a local directory."""

    metadata: FlakeMetadata
    directory: Path | None = None

    @classmethod
    async def from_dir(cls, directory: Union[str, os.PathLike]) -> Flake:
        """Resolve the local flake in a directory."""
        path = Path(directory)
        metadata = await _resolve(os.fspath(path))
        return cls(metadata, path)

    @classmethod
    async def from_uri(cls, uri: str) -> Flake:
        """Resolve a flake from a Flake URI."""
        metadata = await _resolve(uri)
        return cls(metadata)

    def uri(self) -> str:
        """The resolved URI."""
        return self.metadata.resolved_url

    def locked_uri(self) -> str:
        """The locked URI; not locked if the git workspace is dirty."""
        return self.metadata.url

    def local_dir(self) -> Path | None:
        """The local directory, if the flake has one."""
        return self.directory


async def lock_flake_quiet(uri: str) -> None:
    """Lock the dependencies of a flake, discarding Nix's messages."""
    try:
        process = await asyncio.create_subprocess_exec(
            "nix",
            "flake",
            "lock",
            *_EXPERIMENTAL,
            uri,
            stderr=asyncio.subprocess.DEVNULL,
        )
        returncode = await process.wait()
    except OSError as error:
        raise IoError(error) from error

    if returncode != 0:
        raise from_returncode(returncode)