from __future__ import annotations

import hashlib
import json
import logging
import re
from collections import Counter
from typing import Any, Dict, List, Optional, Protocol

import httpx
import numpy as np

logger = logging.getLogger(__name__)

TAG_PROMPT = """Identify 2-5 general, high-level technical topics, categories, or domains that the following text belongs to.
Avoid overly specific terms; prefer broader categories (e.g., 'Web Development' instead of 'React Hooks', 'History' instead of 'Bixby Letter').
Output ONLY a JSON array of strings.
Do NOT output any other text, explanation, or markdown formatting.

Text:
{text}"""

SUMMARY_PROMPT = """Create a concise 2-sentence summary of the following technical text.
Do not include any introductory text. Just return the summary itself.

Text:
{text}"""


class LanguageModelError(RuntimeError):
    pass


class LanguageModel(Protocol):
    """
    Text and embedding generation capability used by the enrichment
    pipeline. Implementations must be safe to call concurrently.
    """

    async def generate_tags(self, text: str) -> List[str]:
        ...

    async def generate_summary(self, text: str) -> str:
        ...

    async def generate_embedding(self, text: str) -> List[float]:
        ...


def parse_tags(output: str) -> List[str]:
    """
    Parse a model answer that should be a JSON array of strings. Markdown
    fences are tolerated; anything else that is not such an array raises
    LanguageModelError so the tag stage stays pending rather than settling on
    an empty tag set.
    """
    cleaned = output.replace("```json", "").replace("```", "").strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise LanguageModelError(f"Tag output is not JSON: {output[:200]!r}") from exc
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise LanguageModelError(f"Tag output is not a JSON array of strings: {output[:200]!r}")
    tags: List[str] = []
    seen = set()
    for item in data:
        tag = item.strip()
        if tag and tag.casefold() not in seen:
            seen.add(tag.casefold())
            tags.append(tag)
    return tags


class GeminiLanguageModel:
    """
    Google Gemini REST client (generateContent / embedContent).

    Every request carries the client timeout; the pipeline wraps calls in its
    own deadline as well. HTTP errors propagate as `httpx.HTTPError`.
    """

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: str,
        text_model: str = "gemini-2.5-flash",
        embedding_model: str = "gemini-embedding-001",
        dimension: int = 768,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("Gemini API key is not configured")
        self.api_key = api_key
        self.text_model = text_model
        self.embedding_model = embedding_model
        self.dimension = dimension
        self.client = client or httpx.AsyncClient(base_url=self.BASE_URL, timeout=httpx.Timeout(timeout_seconds))

    async def aclose(self) -> None:
        await self.client.aclose()

    async def generate_tags(self, text: str) -> List[str]:
        output = await self._generate_content(TAG_PROMPT.format(text=text), json_output=True)
        return parse_tags(output)

    async def generate_summary(self, text: str) -> str:
        output = await self._generate_content(SUMMARY_PROMPT.format(text=text), json_output=False)
        return output.strip()

    async def generate_embedding(self, text: str) -> List[float]:
        payload = {
            "model": f"models/{self.embedding_model}",
            "content": {"parts": [{"text": text}]},
            "outputDimensionality": self.dimension,
        }
        data = await self._post(f"/models/{self.embedding_model}:embedContent", payload)
        values = (data.get("embedding") or {}).get("values") or []
        return [float(v) for v in values]

    async def _generate_content(self, prompt: str, json_output: bool) -> str:
        generation_config: Dict[str, Any] = {"temperature": 0.1, "maxOutputTokens": 1000}
        if json_output:
            generation_config["responseMimeType"] = "application/json"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        data = await self._post(f"/models/{self.text_model}:generateContent", payload)
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.client.post(path, params={"key": self.api_key}, json=payload)
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as exc:
            raise LanguageModelError(f"Gemini returned a non-JSON body for {path}") from exc


_WORD_RE = re.compile(r"[A-Za-z][A-Za-z0-9+#.-]{2,}")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_STOPWORDS = frozenset(
    """
    about above after again against also among and any are because been before being below between both but
    can could did does doing down during each few for from further had has have having her here hers him his
    how into its itself just more most not now off once only other our ours out over own same she should
    some such than that the their theirs them then there these they this those through too under until very
    was were what when where which while who whom why will with would you your yours
    """.split()
)


class LocalLanguageModel:
    """
    Deterministic offline model for development and tests: keyword tags,
    leading-sentence summaries and feature-hashed bag-of-words embeddings.
    Identical text always yields the identical vector, so an article is
    always its own nearest neighbour.
    """

    def __init__(self, dimension: int = 768, max_tags: int = 5):
        self.dimension = dimension
        self.max_tags = max_tags

    @staticmethod
    def _words(text: str) -> List[str]:
        return [w.lower().strip(".-") for w in _WORD_RE.findall(text)]

    async def generate_tags(self, text: str) -> List[str]:
        counts = Counter(w for w in self._words(text) if w and w not in _STOPWORDS)
        return [word.title() for word, _ in counts.most_common(self.max_tags)]

    async def generate_summary(self, text: str) -> str:
        sentences = [s.strip() for s in _SENTENCE_RE.split(text.strip()) if s.strip()]
        return " ".join(sentences[:2])

    async def generate_embedding(self, text: str) -> List[float]:
        words = self._words(text)
        if not words:
            return []
        vector = np.zeros(self.dimension, dtype=np.float64)
        for word in words:
            digest = hashlib.md5(word.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign
        norm = np.linalg.norm(vector)
        if norm == 0:
            return []
        return (vector / norm).tolist()
