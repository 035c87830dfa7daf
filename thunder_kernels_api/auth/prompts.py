"""Strategies for asking the user for a Thunder Compute token."""

import asyncio
import getpass
import inspect
import os
import typing as t

TOKEN_ENV_VAR = "THUNDER_TOKEN"
PROMPT_MESSAGE = "Please enter your Thunder Compute token"
PROMPT_PLACEHOLDER = "Get your token from console.thundercompute.com"


class CredentialPrompt:
    """Asks for a credential. Returns ``None`` when the user declines."""

    async def ask(self) -> t.Optional[str]:
        raise NotImplementedError


class EnvironmentCredentialPrompt(CredentialPrompt):
    def __init__(self, env_var: str = TOKEN_ENV_VAR):
        self.env_var = env_var

    async def ask(self) -> t.Optional[str]:
        return os.environ.get(self.env_var) or None


class ConsoleCredentialPrompt(CredentialPrompt):
    """Hidden terminal input, read in a worker thread so the loop keeps running."""

    def __init__(self, message: str = PROMPT_MESSAGE, placeholder: str = PROMPT_PLACEHOLDER):
        self.message = message
        self.placeholder = placeholder

    async def ask(self) -> t.Optional[str]:
        loop = asyncio.get_running_loop()
        try:
            value = await loop.run_in_executor(
                None, getpass.getpass, f"{self.message} ({self.placeholder}): "
            )
        except (EOFError, KeyboardInterrupt):
            return None
        return value.strip() or None


class CallableCredentialPrompt(CredentialPrompt):
    """Wraps a host-supplied function, sync or async, returning the token."""

    def __init__(self, func: t.Callable[[], t.Any]):
        self.func = func

    async def ask(self) -> t.Optional[str]:
        value = self.func()
        if inspect.isawaitable(value):
            value = await value
        return value or None


class ChainedCredentialPrompt(CredentialPrompt):
    """First non-empty answer from a sequence of prompts."""

    def __init__(self, *prompts: CredentialPrompt):
        self.prompts = prompts

    async def ask(self) -> t.Optional[str]:
        for prompt in self.prompts:
            value = await prompt.ask()
            if value:
                return value
        return None


def default_prompt() -> CredentialPrompt:
    return ChainedCredentialPrompt(EnvironmentCredentialPrompt(), ConsoleCredentialPrompt())
