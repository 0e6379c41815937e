"""
Pytest configuration and fixtures for registry mirror tests.
"""

from __future__ import annotations

import asyncio
import os
from typing import Generator, Sequence
from unittest.mock import patch

import pytest

from regmirror.config import Settings, clear_settings_cache
from regmirror.exceptions import ExternalOperationError
from regmirror.executor import ProcessResult
from regmirror.namespace import Registry, clear_registry_cache

_NOT_FOUND = "ERROR: The system was unable to find the specified registry key or value."


class FakeRegExecutor:
    """In-memory stand-in for reg.exe.

    Keeps keys and values (as reg.exe prints them) keyed by case-folded path,
    records every call, and can fail chosen commands or hold queries until a
    gate is opened.
    """

    def __init__(self) -> None:
        self.keys: dict[str, str] = {}
        self.values: dict[str, dict[str, tuple[str, str]]] = {}
        self.calls: list[tuple[str, list[str]]] = []
        self.failing: set[str] = set()
        self.gate: asyncio.Event | None = None

    # Store setup -------------------------------------------------------

    def add_key(self, path: str) -> None:
        parts = path.split("\\")
        for i in range(1, len(parts) + 1):
            sub = "\\".join(parts[:i])
            self.keys.setdefault(sub.casefold(), sub)
            self.values.setdefault(sub.casefold(), {})

    def add_value(self, path: str, name: str, type_name: str, data: str) -> None:
        self.add_key(path)
        self.values[path.casefold()][name] = (type_name, data)

    def commands(self, command: str) -> list[list[str]]:
        return [args for cmd, args in self.calls if cmd == command]

    # Executor protocol -------------------------------------------------

    async def run(self, command: str, args: Sequence[str]) -> ProcessResult:
        args = list(args)
        self.calls.append((command, args))
        if self.gate is not None and command == "QUERY":
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

        if command in self.failing:
            raise ExternalOperationError(f"{command} failed", exit_code=1)

        args = [a for a in args if not a.startswith("/reg:")]
        handler = getattr(self, f"_{command.lower()}")
        return ProcessResult(stdout=handler(args))

    def _require(self, path: str) -> str:
        key = path.casefold()
        if key not in self.keys:
            raise ExternalOperationError(_NOT_FOUND, exit_code=1)
        return key

    def _children(self, key: str) -> list[str]:
        return [
            display
            for sub, display in self.keys.items()
            if sub.startswith(key + "\\") and "\\" not in sub[len(key) + 1 :]
        ]

    def _query(self, args: list[str]) -> str:
        key = self._require(args[0])
        lines = ["", self.keys[key]]
        for name, (type_name, data) in self.values[key].items():
            lines.append(f"    {name or '(Default)'}    {type_name}    {data}")
        lines.append("")
        lines.extend(self._children(key))
        lines.append("")
        return "\r\n".join(lines)

    def _add(self, args: list[str]) -> str:
        path = args[0]
        self.add_key(path)
        if "/v" in args or "/ve" in args:
            name = args[args.index("/v") + 1] if "/v" in args else ""
            type_name = args[args.index("/t") + 1]
            data = args[args.index("/d") + 1]
            if type_name in ("REG_DWORD", "REG_QWORD", "REG_DWORD_BIG_ENDIAN"):
                data = hex(int(data))
            elif type_name == "REG_MULTI_SZ":
                separator = args[args.index("/s") + 1]
                data = "\\0".join(data.split(separator))
            self.values[path.casefold()][name] = (type_name, data)
        return "The operation completed successfully."

    def _delete(self, args: list[str]) -> str:
        key = self._require(args[0])
        if "/va" in args:
            self.values[key].clear()
        elif "/v" in args or "/ve" in args:
            name = args[args.index("/v") + 1] if "/v" in args else ""
            if name not in self.values[key]:
                raise ExternalOperationError(_NOT_FOUND, exit_code=1)
            del self.values[key][name]
        else:
            for sub in [k for k in self.keys if k == key or k.startswith(key + "\\")]:
                del self.keys[sub]
                del self.values[sub]
        return "The operation completed successfully."

    def _export(self, args: list[str]) -> str:
        self._require(args[0])
        return "The operation completed successfully."

    def _import(self, args: list[str]) -> str:
        return "The operation completed successfully."


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "REG_EXECUTABLE": "reg-test",
        "REG_DEFAULT_VIEW": "64",
        "REG_MULTI_SZ_SEPARATOR": ",",
        "REG_OUTPUT_ENCODING": "utf-8",
        "REG_MAX_CONCURRENT_COMMANDS": "2",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Settings:
    """Provide a Settings instance with mock configuration."""
    return Settings(_env_file=None)


@pytest.fixture
def fake_executor() -> FakeRegExecutor:
    """Provide an empty in-memory registry tool."""
    return FakeRegExecutor()


@pytest.fixture
def registry(fake_executor: FakeRegExecutor, mock_settings: Settings) -> Registry:
    """Provide a registry cache wired to the fake tool."""
    return Registry(executor=fake_executor, settings=mock_settings)


@pytest.fixture(autouse=True)
def reset_caches() -> Generator[None, None, None]:
    """Automatically reset settings and the default registry around each test."""
    clear_settings_cache()
    clear_registry_cache()
    yield
    clear_settings_cache()
    clear_registry_cache()
