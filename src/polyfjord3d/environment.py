"""Process and persistent environment access for installed tools.

Core code never touches ``os.environ`` or the Windows registry directly;
it is handed an ``EnvironmentStore`` instead, so tests can substitute an
in-memory fake.
"""

import logging
import os
import re
import time
from collections.abc import Iterable, MutableMapping
from pathlib import Path
from typing import Literal, Protocol, runtime_checkable

from .deps.locator import find_executable
from .deps.platform import is_windows
from .errors import EnvironmentPublishError

logger = logging.getLogger(__name__)

PLUGIN_PATH_VAR = "QT_PLUGIN_PATH"
DEFAULT_TOOL_NAMES = ("colmap", "glomap", "ffmpeg")


@runtime_checkable
class EnvironmentStore(Protocol):
    """Key-value view of an environment.

    Attributes:
        separator: Separator between entries of PATH-like values.
    """

    separator: str

    def get(self, key: str) -> str | None:
        """Return the value for *key*, or None if unset."""
        ...

    def set(self, key: str, value: str) -> None:
        """Set *key* to *value*."""
        ...

    def contains(self, key: str) -> bool:
        """Return whether *key* is set."""
        ...


class InMemoryEnvironment:
    """Dictionary-backed store."""

    def __init__(self, values: dict[str, str] | None = None, separator: str = os.pathsep):
        self.values = dict(values or {})
        self.separator = separator

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def contains(self, key: str) -> bool:
        return key in self.values


class ProcessEnvironment:
    """The current process environment (inherited by child processes)."""

    def __init__(self, environ: MutableMapping[str, str] | None = None):
        self.environ = os.environ if environ is None else environ
        self.separator = os.pathsep

    def get(self, key: str) -> str | None:
        return self.environ.get(key)

    def set(self, key: str, value: str) -> None:
        self.environ[key] = value

    def contains(self, key: str) -> bool:
        return key in self.environ


class WindowsRegistryEnvironment:
    """Persistent Windows environment stored in the registry.

    Args:
        mode: "user" edits HKEY_CURRENT_USER\\Environment; "system" edits the
            machine-wide key and needs administrator rights.
    """

    USER_KEY = "Environment"
    SYSTEM_KEY = r"System\CurrentControlSet\Control\Session Manager\Environment"

    def __init__(self, mode: Literal["user", "system"] = "user"):
        import winreg

        self._winreg = winreg
        self.mode = mode
        self.separator = ";"
        if mode == "system":
            self._hive, self._path = winreg.HKEY_LOCAL_MACHINE, self.SYSTEM_KEY
        else:
            self._hive, self._path = winreg.HKEY_CURRENT_USER, self.USER_KEY

    def _open(self, access: int):
        try:
            return self._winreg.OpenKey(self._hive, self._path, 0, access)
        except OSError as e:
            raise EnvironmentPublishError(
                f"Cannot open registry key {self._path}: {e}"
            ) from e

    def get(self, key: str) -> str | None:
        with self._open(self._winreg.KEY_READ) as env_key:
            try:
                value, _ = self._winreg.QueryValueEx(env_key, key)
            except FileNotFoundError:
                return None
        return str(value)

    def set(self, key: str, value: str) -> None:
        access = self._winreg.KEY_READ | self._winreg.KEY_WRITE
        with self._open(access) as env_key:
            try:
                self._winreg.SetValueEx(
                    env_key, key, 0, self._winreg.REG_EXPAND_SZ, value
                )
            except OSError as e:
                raise EnvironmentPublishError(
                    f"Cannot write {key} to registry: {e}"
                ) from e

    def contains(self, key: str) -> bool:
        return self.get(key) is not None


_EXPORT_RE = re.compile(r'^export (\w+)="(.*?)(\$\{\w+:\+:\$\w+\})?"$')


class ShellProfileEnvironment:
    """Persistent environment kept as a POSIX shell script.

    Each key is written as an ``export`` line; PATH-like keys keep the
    caller's existing value after the stored entries. Users source the
    script from their shell profile.

    Args:
        path: Script location.
        append_existing: Keys whose previous runtime value is appended.
    """

    def __init__(self, path: str | Path, append_existing: Iterable[str] = ("PATH",)):
        self.path = Path(path)
        self.append_existing = set(append_existing)
        self.separator = ":"

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        values = {}
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise EnvironmentPublishError(f"Cannot read {self.path}: {e}") from e
        for line in lines:
            match = _EXPORT_RE.match(line.strip())
            if match:
                values[match.group(1)] = match.group(2)
        return values

    def _write(self, values: dict[str, str]) -> None:
        lines = ["# Generated by polyfjord3d. Source this file from your shell profile."]
        for key, value in values.items():
            suffix = f"${{{key}:+:${key}}}" if key in self.append_existing else ""
            lines.append(f'export {key}="{value}{suffix}"')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except OSError as e:
            raise EnvironmentPublishError(f"Cannot write {self.path}: {e}") from e

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        values = self._read()
        values[key] = value
        self._write(values)

    def contains(self, key: str) -> bool:
        return key in self._read()


def default_path_key() -> str:
    return "Path" if is_windows() else "PATH"


def default_persistent_store(
    tools_root: Path, mode: Literal["user", "system"] = "user"
) -> EnvironmentStore:
    """Return the persistent store appropriate for this platform."""
    if is_windows():
        return WindowsRegistryEnvironment(mode)
    return ShellProfileEnvironment(tools_root / "env.sh")


def _split(value: str | None, separator: str) -> list[str]:
    if not value:
        return []
    return [entry for entry in value.split(separator) if entry]


def add_to_path(
    store: EnvironmentStore,
    directories: Iterable[Path],
    key: str | None = None,
) -> list[Path]:
    """Append directories to a PATH-like value, skipping ones already present.

    Presence is decided by exact path comparison, so adding the same
    directory twice leaves exactly one occurrence.

    Args:
        store: Environment to update.
        directories: Directories to add, in order.
        key: Variable name (defaults to the platform's PATH key).

    Returns:
        Directories actually added (empty when nothing changed).
    """
    key = key or default_path_key()
    entries = _split(store.get(key), store.separator)
    present = [Path(entry) for entry in entries]
    start = time.perf_counter()

    added = []
    for directory in map(Path, directories):
        elapsed_ms = (time.perf_counter() - start) * 1000
        if directory in present:
            logger.info("%s is already in PATH. (%.0f ms)", directory, elapsed_ms)
            continue
        logger.info("Adding %s to PATH. (%.0f ms)", directory, elapsed_ms)
        entries.append(str(directory))
        present.append(directory)
        added.append(directory)

    if added:
        store.set(key, store.separator.join(entries))
        logger.info(
            "Updated PATH environment variable. (%.0f ms)",
            (time.perf_counter() - start) * 1000,
        )
    else:
        logger.info("All tool paths are already in the PATH environment variable.")
    return added


def tool_directories(
    tools_root: Path, tool_names: Iterable[str] = DEFAULT_TOOL_NAMES
) -> list[Path]:
    """Return the directories holding each installed tool's executable."""
    directories = []
    for name in tool_names:
        executable = find_executable(tools_root / name, name)
        if executable is not None:
            directories.append(executable.parent)
    return directories


def publish_tool_paths(
    store: EnvironmentStore,
    install_dir: Path,
    tools_root: Path | None = None,
    tool_names: Iterable[str] = DEFAULT_TOOL_NAMES,
    broadcast: bool = False,
    key: str | None = None,
) -> list[Path]:
    """Persist an install directory and installed tools' directories to PATH.

    Args:
        store: Persistent environment.
        install_dir: Directory to add first (made absolute).
        tools_root: Tools root to scan for installed tools, if any.
        tool_names: Tool names looked up under *tools_root*.
        broadcast: Notify running Windows processes of the change.
        key: PATH variable name (defaults to the platform's).

    Returns:
        Directories newly added.
    """
    directories = [Path(install_dir).absolute()]
    if tools_root is not None and tools_root.exists():
        directories.extend(tool_directories(tools_root, tool_names))

    added = add_to_path(store, directories, key=key)
    if added and broadcast:
        broadcast_environment_change()
    return added


def broadcast_environment_change() -> bool:
    """Send WM_SETTINGCHANGE so Explorer and shells reload the environment.

    Returns:
        True if the broadcast was delivered (always False off Windows).
    """
    if not is_windows():
        logger.debug("Environment change broadcast is Windows-only, skipping")
        return False

    import ctypes
    from ctypes import wintypes

    HWND_BROADCAST = 0xFFFF
    WM_SETTINGCHANGE = 0x001A
    SMTO_ABORTIFHUNG = 0x0002

    result = wintypes.DWORD()
    ok = ctypes.windll.user32.SendMessageTimeoutW(
        HWND_BROADCAST,
        WM_SETTINGCHANGE,
        0,
        "Environment",
        SMTO_ABORTIFHUNG,
        5000,
        ctypes.byref(result),
    )
    if not ok:
        logger.warning("Failed to broadcast environment variable change.")
    return bool(ok)


def configure_plugin_path(store: EnvironmentStore, colmap_install_dir: Path) -> str:
    """Prepend COLMAP's bundled Qt plugins directory to QT_PLUGIN_PATH.

    Any existing value is kept after the separator.

    Returns:
        The new value.
    """
    value = str(colmap_install_dir / "plugins")
    existing = store.get(PLUGIN_PATH_VAR)
    if existing:
        value = f"{value}{store.separator}{existing}"
    store.set(PLUGIN_PATH_VAR, value)
    logger.debug("%s=%s", PLUGIN_PATH_VAR, value)
    return value

