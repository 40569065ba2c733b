"""HTTP client for the assessment API."""

from dataclasses import dataclass

import httpx

_TIMEOUT = 15
_GENERATION_TIMEOUT = 120


@dataclass
class HttpxAssessmentApiClient:
    """Assessment API client implemented with httpx."""

    base_url: str
    owner_id: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, base_url: str, owner_id: str) -> "HttpxAssessmentApiClient":
        """Create an API client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            owner_id=owner_id,
            http_client=httpx.AsyncClient(),
        )

    async def create_session(self) -> dict[str, object]:
        return await self._request("POST", "/sessions")

    async def pregenerate(
        self, session_id: str, stages: list[dict[str, object]] | None = None
    ) -> dict[str, object]:
        """Pre-generate every stage; waits for the whole batch."""
        return await self._request(
            "POST",
            f"/sessions/{session_id}/pregenerate",
            json={"stages": stages or []},
            timeout=_GENERATION_TIMEOUT,
        )

    async def get_snapshot(self, session_id: str) -> dict[str, object]:
        return await self._request("GET", f"/sessions/{session_id}")

    async def get_stage_content(
        self,
        session_id: str,
        stage: str,
        topic: str | None = None,
        difficulty: str | None = None,
    ) -> dict[str, object]:
        return await self._request(
            "POST",
            f"/sessions/{session_id}/stages/{stage}/content",
            json={"topic": topic, "difficulty": difficulty},
            timeout=_GENERATION_TIMEOUT,
        )

    async def submit_item(
        self, session_id: str, stage: str, submission: dict[str, object]
    ) -> dict[str, object]:
        return await self._request(
            "POST",
            f"/sessions/{session_id}/stages/{stage}/items",
            json=submission,
            timeout=_GENERATION_TIMEOUT,
        )

    async def complete_stage(
        self, session_id: str, stage: str, score: float
    ) -> dict[str, object]:
        return await self._request(
            "POST",
            f"/sessions/{session_id}/stages/{stage}/complete",
            json={"score": score},
        )

    async def force_submit(self, session_id: str, reason: str) -> dict[str, object]:
        return await self._request(
            "POST", f"/sessions/{session_id}/force-submit", json={"reason": reason}
        )

    async def get_score(self, session_id: str) -> dict[str, object]:
        return await self._request("GET", f"/sessions/{session_id}/score")

    async def get_results(self, session_id: str) -> dict[str, object]:
        return await self._request("GET", f"/sessions/{session_id}/results")

    async def get_feedback(self, session_id: str) -> dict[str, object]:
        return await self._request("GET", f"/sessions/{session_id}/feedback")

    async def clear_session(self, session_id: str) -> dict[str, object]:
        return await self._request("DELETE", f"/sessions/{session_id}")

    async def reset(self, session_id: str) -> dict[str, object]:
        return await self._request("POST", f"/sessions/{session_id}/reset")

    async def get_audio(self, artifact_id: str) -> bytes:
        """Download the audio for an artifact."""
        response = await self.http_client.get(
            f"{self.base_url}/audio/{artifact_id}",
            headers=self._headers(),
            timeout=_TIMEOUT,
        )
        response.raise_for_status()
        return response.content

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, object] | None = None,
        timeout: float = _TIMEOUT,
    ) -> dict[str, object]:
        response = await self.http_client.request(
            method,
            f"{self.base_url}{path}",
            json=json,
            headers=self._headers(),
            timeout=timeout,
        )
        response.raise_for_status()
        return response.json()

    def _headers(self) -> dict[str, str]:
        return {"X-Owner-Id": self.owner_id}
