import logging
from typing import Any, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from promptify.errors import NotAuthenticated, TransientError, error_from_payload
from promptify.schemas import ProfileRead, PromptRead, PromptSecretRead, UnlockedPromptIds, UnlockResult
from promptify.settings.config import settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(model: Type[ModelT], data: Any) -> ModelT:
    """Validate a response body; a malformed one is treated like a failed request."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("Malformed %s in response: %s", model.__name__, exc.error_count())
        raise TransientError(f"Malformed {model.__name__} response") from exc


class PromptifyAPI:
    """Thin async HTTP client for the Promptify service.

    Error payloads are turned back into ``promptify.errors`` exceptions;
    network failures and 5xx answers become ``TransientError``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            timeout=timeout or settings.API_TIMEOUT,
        )
        self._owns_client = client is None
        self.token = token

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "PromptifyAPI":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = dict(kwargs.pop("headers", None) or {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransientError(f"Network error: {exc.__class__.__name__}") from exc

        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            if resp.status_code >= 500:
                logger.warning("%s %s answered %s", method, path, resp.status_code)
                raise TransientError(f"Service error ({resp.status_code})")
            raise error_from_payload(payload, resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            logger.warning("%s %s answered %s with a non-JSON body", method, path, resp.status_code)
            raise TransientError(f"Unreadable response ({resp.status_code})") from exc

    # ----- session -----
    async def login(self, email: str, password: str) -> str:
        data = await self._request(
            "POST", "/auth/jwt/login", data={"username": email, "password": password}
        )
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise NotAuthenticated("Login did not return a token")
        self.token = token
        return token

    async def me(self) -> ProfileRead:
        return _parse(ProfileRead, await self._request("GET", "/api/me"))

    async def unlocked_prompt_ids(self) -> list[int]:
        data = await self._request("GET", "/api/me/unlocked")
        return _parse(UnlockedPromptIds, data).prompt_ids

    # ----- catalogue -----
    async def list_prompts(self) -> list[PromptRead]:
        return [_parse(PromptRead, p) for p in await self._request("GET", "/api/prompts") or []]

    async def get_prompt(self, prompt_id: int) -> PromptRead:
        return _parse(PromptRead, await self._request("GET", f"/api/prompts/{prompt_id}"))

    # ----- unlock -----
    async def unlock_prompt(self, prompt_id: int) -> UnlockResult:
        return _parse(UnlockResult, await self._request("POST", f"/api/prompts/{prompt_id}/unlock"))

    async def get_prompt_secret(self, prompt_id: int) -> str:
        data = await self._request("GET", f"/api/prompts/{prompt_id}/secret")
        return _parse(PromptSecretRead, data).prompt_text
