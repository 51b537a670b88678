"""Platform backend protocol and implementations.

A backend reads and writes the *persistent* environment: the values a new
login session would see. The process environment is handled by the store
itself.
"""

import ctypes
import logging
import sys
from typing import Protocol, TextIO

from envx.constants import SYSTEM_ENV_KEY, USER_ENV_KEY
from envx.errors import PersistenceError
from envx.models import Scope

logger = logging.getLogger(__name__)


class PlatformBackend(Protocol):
    """Protocol that all persistent-environment backends must satisfy."""

    def load_system(self) -> dict[str, str]:
        """Return machine-scope variables (empty where the platform has none)."""
        ...

    def load_user(self) -> dict[str, str]:
        """Return user-scope variables (empty where the platform has none)."""
        ...

    def set_persistent(self, name: str, value: str, scope: Scope = Scope.USER) -> None:
        """Make name=value survive the current process. Raises PersistenceError."""
        ...

    def delete_persistent(self, name: str, scope: Scope = Scope.USER) -> None:
        """Remove name from the persistent scope. No-op if absent."""
        ...


class RegistryBackend:
    """Windows backend writing HKCU\\Environment and the HKLM session environment."""

    HWND_BROADCAST = 0xFFFF
    WM_SETTINGCHANGE = 0x1A
    SMTO_ABORTIFHUNG = 0x0002

    def _key(self, scope: Scope) -> tuple[int, str]:
        import winreg

        if scope is Scope.SYSTEM:
            return winreg.HKEY_LOCAL_MACHINE, SYSTEM_ENV_KEY
        return winreg.HKEY_CURRENT_USER, USER_ENV_KEY

    def _read(self, scope: Scope) -> dict[str, str]:
        import winreg

        root, path = self._key(scope)
        values: dict[str, str] = {}
        try:
            with winreg.OpenKey(root, path, 0, winreg.KEY_READ) as key:
                index = 0
                while True:
                    try:
                        name, value, _ = winreg.EnumValue(key, index)
                    except OSError:
                        break
                    values[str(name)] = str(value)
                    index += 1
        except OSError as exc:
            logger.warning("cannot read %s environment: %s", scope.value, exc)
        return values

    def load_system(self) -> dict[str, str]:
        return self._read(Scope.SYSTEM)

    def load_user(self) -> dict[str, str]:
        return self._read(Scope.USER)

    def set_persistent(self, name: str, value: str, scope: Scope = Scope.USER) -> None:
        import winreg

        root, path = self._key(scope)
        kind = winreg.REG_EXPAND_SZ if "%" in value else winreg.REG_SZ
        try:
            with winreg.CreateKeyEx(root, path, 0, winreg.KEY_SET_VALUE) as key:
                winreg.SetValueEx(key, name, 0, kind, value)
        except OSError as exc:
            raise PersistenceError(f"cannot write {name} to {scope.value} registry: {exc}") from exc
        self.broadcast()

    def delete_persistent(self, name: str, scope: Scope = Scope.USER) -> None:
        import winreg

        root, path = self._key(scope)
        try:
            with winreg.OpenKey(root, path, 0, winreg.KEY_SET_VALUE) as key:
                winreg.DeleteValue(key, name)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise PersistenceError(
                f"cannot delete {name} from {scope.value} registry: {exc}"
            ) from exc
        self.broadcast()

    def broadcast(self) -> None:
        """Tell running programs that the environment block changed."""
        result = ctypes.c_ulong()
        sent = ctypes.windll.user32.SendMessageTimeoutW(  # type: ignore[attr-defined]
            self.HWND_BROADCAST,
            self.WM_SETTINGCHANGE,
            0,
            "Environment",
            self.SMTO_ABORTIFHUNG,
            5000,
            ctypes.byref(result),
        )
        if not sent:
            logger.debug("WM_SETTINGCHANGE broadcast timed out")


class ShellBackend:
    """POSIX backend: persistent sources are shell rc files we never edit.

    ``set_persistent`` prints the ``export`` line the user should add to their
    shell startup file instead.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def load_system(self) -> dict[str, str]:
        return {}

    def load_user(self) -> dict[str, str]:
        return {}

    def set_persistent(self, name: str, value: str, scope: Scope = Scope.USER) -> None:
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        print(f'export {name}="{escaped}"', file=self._stream or sys.stdout)

    def delete_persistent(self, name: str, scope: Scope = Scope.USER) -> None:
        print(f"unset {name}", file=self._stream or sys.stdout)


class MemoryBackend:
    """In-memory backend seeded with system and user maps."""

    def __init__(
        self,
        system: dict[str, str] | None = None,
        user: dict[str, str] | None = None,
        fail_writes: bool = False,
    ) -> None:
        self.system: dict[str, str] = dict(system or {})
        self.user: dict[str, str] = dict(user or {})
        self.fail_writes = fail_writes

    def _scope(self, scope: Scope) -> dict[str, str]:
        return self.system if scope is Scope.SYSTEM else self.user

    def load_system(self) -> dict[str, str]:
        return dict(self.system)

    def load_user(self) -> dict[str, str]:
        return dict(self.user)

    def set_persistent(self, name: str, value: str, scope: Scope = Scope.USER) -> None:
        if self.fail_writes:
            raise PersistenceError(f"cannot write {name}: backend is read-only")
        self._scope(scope)[name] = value

    def delete_persistent(self, name: str, scope: Scope = Scope.USER) -> None:
        if self.fail_writes:
            raise PersistenceError(f"cannot delete {name}: backend is read-only")
        self._scope(scope).pop(name, None)


def default_backend() -> PlatformBackend:
    """Pick the backend for the running platform."""
    if sys.platform == "win32":
        return RegistryBackend()
    return ShellBackend()
