"""Client-side unlock flow and the cache it keeps in sync with the service.

The cache is never advanced on a guess: balances and grants only change when
the service has answered, and a fresh ``refresh()`` replaces them wholesale.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from promptify.background import spawn
from promptify.client.api import PromptifyAPI
from promptify.errors import (
    Forbidden,
    InsufficientBalance,
    NotAuthenticated,
    NotFound,
    PromptifyError,
    TransientError,
)
from promptify.schemas import ProfileRead

logger = logging.getLogger(__name__)

MSG_NO_COINS = "You need at least one coin to unlock this prompt."
MSG_RETRY = "Couldn't unlock the prompt. Please try again."
MSG_UNAVAILABLE = "This prompt's text is unavailable right now."
MSG_SIGN_IN = "Sign in to unlock prompts."


class PromptState(str, enum.Enum):
    locked = "locked"
    pending = "pending"
    unlocked = "unlocked"
    unavailable = "unavailable"


@dataclass
class ClientCache:
    profile: Optional[ProfileRead] = None
    coins: int = 0
    unlocked: Set[int] = field(default_factory=set)
    secrets: Dict[int, str] = field(default_factory=dict)
    states: Dict[int, PromptState] = field(default_factory=dict)
    messages: Dict[int, str] = field(default_factory=dict)

    def settled_state(self, prompt_id: int) -> PromptState:
        return PromptState.unlocked if prompt_id in self.unlocked else PromptState.locked


class UnlockOrchestrator:
    def __init__(self, api: PromptifyAPI):
        self.api = api
        self.cache = ClientCache()
        self._inflight: Dict[int, asyncio.Task] = {}

    # ----- session -----
    @property
    def authenticated(self) -> bool:
        return self.cache.profile is not None

    async def refresh(self) -> ProfileRead:
        """Replace cached balance and grants with the service's view.

        Secret text is only kept for prompts the service still lists as
        unlocked for the same profile.
        """
        cache = self.cache
        profile = await self.api.me()
        if cache.profile is not None and cache.profile.id != profile.id:
            cache.secrets.clear()
        cache.profile = profile
        cache.coins = profile.coins
        cache.unlocked = set(profile.unlocked_prompt_ids)
        for pid in [pid for pid in cache.secrets if pid not in cache.unlocked]:
            del cache.secrets[pid]
        for pid, state in list(cache.states.items()):
            if state != PromptState.pending:
                cache.states[pid] = cache.settled_state(pid)
        return profile

    async def sign_in(self, email: str, password: str) -> ProfileRead:
        await self.api.login(email, password)
        return await self.refresh()

    def sign_out(self) -> None:
        # requests already sent keep writing to the cache they started with
        self.api.token = None
        self.cache = ClientCache()
        self._inflight.clear()

    # ----- queries -----
    def state_of(self, prompt_id: int) -> PromptState:
        return self.cache.states.get(prompt_id) or self.cache.settled_state(prompt_id)

    def secret_for(self, prompt_id: int) -> Optional[str]:
        return self.cache.secrets.get(prompt_id)

    def message_for(self, prompt_id: int) -> Optional[str]:
        return self.cache.messages.get(prompt_id)

    # ----- unlock -----
    async def request_unlock(self, prompt_id: int) -> None:
        """Unlock ``prompt_id`` and load its text into the cache.

        Raises NotAuthenticated, InsufficientBalance or TransientError. A second
        call while one is pending for the same prompt waits on the first one.
        Cancelling the caller does not cancel the request already sent.
        """
        task = self._inflight.get(prompt_id)
        if task is None:
            cache = self.cache
            if not self.authenticated:
                cache.messages[prompt_id] = MSG_SIGN_IN
                raise NotAuthenticated()
            if prompt_id not in cache.unlocked and cache.coins < 1:
                # cached balance may be stale; the service has the final say when it is >= 1
                cache.messages[prompt_id] = MSG_NO_COINS
                raise InsufficientBalance()

            cache.states[prompt_id] = PromptState.pending
            cache.messages.pop(prompt_id, None)
            task = spawn(self._unlock(cache, prompt_id), name=f"unlock:{prompt_id}")
            self._inflight[prompt_id] = task
            task.add_done_callback(lambda t, pid=prompt_id: self._forget(pid, t))

        await asyncio.shield(task)

    def _forget(self, prompt_id: int, task: asyncio.Task) -> None:
        if self._inflight.get(prompt_id) is task:
            del self._inflight[prompt_id]

    async def _unlock(self, cache: ClientCache, prompt_id: int) -> None:
        try:
            if prompt_id not in cache.unlocked:
                await self._charge(cache, prompt_id)
            await self._reveal(cache, prompt_id)
        except PromptifyError:
            raise
        except Exception:
            self._settle(cache, prompt_id, MSG_RETRY)
            raise

    async def _charge(self, cache: ClientCache, prompt_id: int) -> None:
        try:
            result = await self.api.unlock_prompt(prompt_id)
        except InsufficientBalance:
            self._settle(cache, prompt_id, MSG_NO_COINS)
            raise
        except NotAuthenticated:
            self._settle(cache, prompt_id, MSG_SIGN_IN)
            raise
        except PromptifyError as exc:
            self._settle(cache, prompt_id, MSG_RETRY)
            if isinstance(exc, TransientError):
                raise
            raise TransientError(exc.message) from exc

        cache.unlocked.add(prompt_id)
        cache.coins = result.coins_left
        if cache.profile is not None:
            cache.profile = cache.profile.model_copy(
                update={
                    "coins": result.coins_left,
                    "unlocked_prompt_ids": sorted(cache.unlocked),
                }
            )
        logger.info("Prompt %s unlocked, %s coins left", prompt_id, result.coins_left)

    async def _reveal(self, cache: ClientCache, prompt_id: int) -> None:
        try:
            text = await self.api.get_prompt_secret(prompt_id)
        except (Forbidden, NotFound) as exc:
            logger.warning("Secret for prompt %s unavailable after unlock: %s", prompt_id, exc.code)
            cache.states[prompt_id] = PromptState.unavailable
            cache.messages[prompt_id] = MSG_UNAVAILABLE
            return
        except TransientError:
            self._settle(cache, prompt_id, MSG_RETRY)
            raise
        except NotAuthenticated:
            self._settle(cache, prompt_id, MSG_SIGN_IN)
            raise
        except PromptifyError as exc:
            self._settle(cache, prompt_id, MSG_RETRY)
            raise TransientError(exc.message) from exc
        cache.secrets[prompt_id] = text
        cache.states[prompt_id] = PromptState.unlocked

    @staticmethod
    def _settle(cache: ClientCache, prompt_id: int, message: str) -> None:
        cache.states[prompt_id] = cache.settled_state(prompt_id)
        cache.messages[prompt_id] = message
