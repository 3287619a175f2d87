"""Command bridge: the request/response operations the core needs from the host.

File I/O, encryption and directory management live behind this interface.
:class:`ProcessBridge` talks to an external helper program; tests use an
in-memory implementation of the same protocol.
"""

import asyncio
import json
import logging
import subprocess
from typing import Any, Protocol

_LOG = logging.getLogger(__name__)


class BridgeError(Exception):
    """Base exception for command bridge errors."""
    pass


class BridgeIOError(BridgeError):
    """Transient I/O failure (disk busy, missing file, helper crashed)."""
    pass


class BridgePermissionError(BridgeIOError):
    """The helper was denied access to the notes directory."""
    pass


class WrongPasswordError(BridgeError):
    """Decryption failed because the password did not match."""
    pass


class BridgeProtocolError(BridgeError):
    """The helper answered with something that is not valid JSON."""
    pass


class CommandBridge(Protocol):
    """Operations consumed from the host. Kind flags select the notes subdirectory."""

    async def list_notes(self) -> list[dict]: ...

    async def list_folders(self) -> list[dict]: ...

    async def list_trash(self) -> list[dict]: ...

    async def read_note(self, filename: str, *, is_daily: bool = False, is_weekly: bool = False) -> str: ...

    async def write_note(
        self, filename: str, content: str, *, is_daily: bool = False, is_weekly: bool = False
    ) -> None: ...

    async def delete_note(self, filename: str, *, is_daily: bool = False, is_weekly: bool = False) -> None: ...

    async def create_note_from_template(
        self, filename: str, template_id: str, *, is_daily: bool = False, is_weekly: bool = False
    ) -> None: ...

    async def lock_note(
        self, filename: str, password: str, *, is_daily: bool = False, is_weekly: bool = False
    ) -> None: ...

    async def unlock_note(
        self, filename: str, password: str, *, is_daily: bool = False, is_weekly: bool = False
    ) -> str: ...

    async def permanently_unlock_note(
        self, filename: str, password: str, *, is_daily: bool = False, is_weekly: bool = False
    ) -> None: ...

    async def is_note_locked(self, filename: str, *, is_daily: bool = False, is_weekly: bool = False) -> bool: ...


def run_helper(command: list[str], operation: str, payload: dict[str, Any]) -> Any:
    """Execute one helper operation and return its decoded JSON result.

    Args:
        command: Helper program and its fixed leading arguments
        operation: Operation name, appended as the last argument
        payload: Request arguments, sent as JSON on stdin

    Returns:
        The JSON-decoded stdout, or None when the helper printed nothing

    Raises:
        WrongPasswordError: If decryption was rejected
        BridgePermissionError: If the helper was denied access
        BridgeIOError: If the helper failed or could not be started
        BridgeProtocolError: If stdout is not valid JSON
    """
    try:
        result = subprocess.run(
            [*command, operation],
            input=json.dumps(payload),
            capture_output=True,
            text=True,
            check=True,
        )
    except FileNotFoundError as e:
        raise BridgeIOError(f"Bridge helper not found: {command[0]}") from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        lowered = stderr.lower()

        if "wrong password" in lowered or "invalid password" in lowered:
            raise WrongPasswordError("Wrong password") from e

        if "not allowed" in lowered or "permission" in lowered:
            raise BridgePermissionError(
                f"Access to the notes directory was denied: {stderr}"
            ) from e

        raise BridgeIOError(f"{operation} failed: {stderr}") from e

    output = result.stdout.strip()
    if not output:
        return None
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        raise BridgeProtocolError(f"{operation} returned invalid JSON: {output[:80]!r}") from e


class ProcessBridge:
    """:class:`CommandBridge` that runs an external helper per operation.

    The helper is called as ``<command...> <operation>`` with camelCase
    JSON arguments on stdin. Calls run in a worker thread so the event
    loop keeps serving timers while the helper works.
    """

    def __init__(self, command: list[str] | str) -> None:
        self.command = command.split() if isinstance(command, str) else list(command)
        if not self.command:
            raise ValueError("bridge command must not be empty")

    async def call(self, operation: str, **payload: Any) -> Any:
        _LOG.debug("Bridge call %s %s", operation, payload.get("filename", ""))
        return await asyncio.to_thread(run_helper, self.command, operation, payload)

    async def list_notes(self) -> list[dict]:
        return await self.call("list_notes") or []

    async def list_folders(self) -> list[dict]:
        return await self.call("list_folders") or []

    async def list_trash(self) -> list[dict]:
        return await self.call("list_trash") or []

    async def read_note(self, filename: str, *, is_daily: bool = False, is_weekly: bool = False) -> str:
        content = await self.call("read_note", filename=filename, isDaily=is_daily, isWeekly=is_weekly)
        return content or ""

    async def write_note(
        self, filename: str, content: str, *, is_daily: bool = False, is_weekly: bool = False
    ) -> None:
        await self.call("write_note", filename=filename, content=content, isDaily=is_daily, isWeekly=is_weekly)

    async def delete_note(self, filename: str, *, is_daily: bool = False, is_weekly: bool = False) -> None:
        await self.call("delete_note", filename=filename, isDaily=is_daily, isWeekly=is_weekly)

    async def create_note_from_template(
        self, filename: str, template_id: str, *, is_daily: bool = False, is_weekly: bool = False
    ) -> None:
        await self.call(
            "create_note_from_template",
            filename=filename,
            templateId=template_id,
            isDaily=is_daily,
            isWeekly=is_weekly,
        )

    async def lock_note(
        self, filename: str, password: str, *, is_daily: bool = False, is_weekly: bool = False
    ) -> None:
        await self.call("lock_note", filename=filename, password=password, isDaily=is_daily, isWeekly=is_weekly)

    async def unlock_note(
        self, filename: str, password: str, *, is_daily: bool = False, is_weekly: bool = False
    ) -> str:
        content = await self.call(
            "unlock_note", filename=filename, password=password, isDaily=is_daily, isWeekly=is_weekly
        )
        return content or ""

    async def permanently_unlock_note(
        self, filename: str, password: str, *, is_daily: bool = False, is_weekly: bool = False
    ) -> None:
        await self.call(
            "permanently_unlock_note", filename=filename, password=password, isDaily=is_daily, isWeekly=is_weekly
        )

    async def is_note_locked(self, filename: str, *, is_daily: bool = False, is_weekly: bool = False) -> bool:
        return bool(await self.call("is_note_locked", filename=filename, isDaily=is_daily, isWeekly=is_weekly))
