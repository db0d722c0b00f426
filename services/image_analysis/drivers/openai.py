"""OpenAI vision metadata provider."""

from __future__ import annotations

import json

from shared.errors import ProcessingError
from shared.models import MetadataRequest, MetadataResult
from shared.openai_client import create_openai_client, get_model_name

from .base import MetadataProvider

DEFAULT_PROMPT = (
    "Describe this photo for a stock photography listing. "
    "Provide a short title, a one-paragraph description and up to 49 keywords."
)


class OpenAIVisionProvider(MetadataProvider):
    """Chat completion with an image part and a JSON object response."""

    name = "openai"

    def __init__(self, model: str | None = None) -> None:
        self.client = create_openai_client()
        self.model_name = get_model_name(model)

    async def generate(self, request: MetadataRequest) -> MetadataResult:
        system_prompt = (
            "You write metadata for stock photos. "
            "Respond in JSON with keys: "
            "title (string), description (string), keywords (array of lowercase strings), "
            "category (string)."
        )

        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                response_format={"type": "json_object"},
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": request.prompt or DEFAULT_PROMPT},
                            {"type": "image_url", "image_url": {"url": request.image_url}},
                        ],
                    },
                ],
            )
        except Exception as exc:
            raise ProcessingError(f"OpenAI request failed: {exc}", file_id=request.file_id) from exc

        content = response.choices[0].message.content
        try:
            payload = json.loads(content) if content else {}
        except json.JSONDecodeError as exc:
            raise ProcessingError("OpenAI response was not valid JSON", file_id=request.file_id) from exc

        description = payload.get("description") or payload.get("caption")
        if not description:
            raise ProcessingError("OpenAI response did not include a description", file_id=request.file_id)

        keywords: list[str] = []
        for keyword in payload.get("keywords") or []:
            normalized = str(keyword).strip().lower()
            if normalized and normalized not in keywords:
                keywords.append(normalized)

        return MetadataResult(
            description=str(description),
            keywords=keywords,
            title=payload.get("title"),
            category=payload.get("category"),
        )
