"""Thunder Compute token resolution and persistence."""

import asyncio
import os

from traitlets import Any, Unicode, default
from traitlets.config import LoggingConfigurable

from ..errors import CredentialRequired
from .prompts import CallableCredentialPrompt, CredentialPrompt, default_prompt

TOKEN_FILE = os.path.join("~", ".thunder", "token")


class CredentialStore(LoggingConfigurable):
    """Resolves the bearer token used against the Thunder Compute control API.

    The token is read from ``token_file``; when that fails the user is
    prompted and the answer is written back to the file. Once resolved the
    token is cached on the instance until ``invalidate()`` is called.
    """

    token_file = Unicode(
        TOKEN_FILE,
        config=True,
        help="""Plain-text file holding the Thunder Compute token (single line).""",
    )

    prompt = Any(
        allow_none=True,
        help="""CredentialPrompt (or plain callable) used when no token file is readable.""",
    )

    @default("prompt")
    def _default_prompt(self):
        return default_prompt()

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._credential = None

    @property
    def token_path(self) -> str:
        return os.path.expanduser(self.token_file)

    async def get_credential(self) -> str:
        """Return a non-empty token, prompting for one if none is stored.

        Raises
        ------
        CredentialRequired
            If the user declines to enter a token
        """
        if self._credential:
            return self._credential

        try:
            token = await asyncio.get_running_loop().run_in_executor(None, self._read_token)
        except OSError as e:
            self.log.debug(f"No readable token at {self.token_path}: {e}")
            token = ""

        if not token:
            token = await self._ask()
            await asyncio.get_running_loop().run_in_executor(None, self._write_token, token)
            self.log.info(f"Saved Thunder Compute token to {self.token_path}")

        self._credential = token
        return token

    def invalidate(self) -> None:
        """Forget the cached token. The token file is left as is."""
        if self._credential:
            self.log.debug("Dropping cached Thunder Compute token")
        self._credential = None

    async def _ask(self) -> str:
        prompt = self.prompt
        if prompt is None:
            raise CredentialRequired()
        if not isinstance(prompt, CredentialPrompt):
            prompt = CallableCredentialPrompt(prompt)
        token = await prompt.ask()
        token = (token or "").strip()
        if not token:
            raise CredentialRequired()
        return token

    def _read_token(self) -> str:
        with open(self.token_path, encoding="utf-8") as f:
            return f.read().strip()

    def _write_token(self, token: str) -> None:
        path = self.token_path
        os.makedirs(os.path.dirname(path), exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(token)
