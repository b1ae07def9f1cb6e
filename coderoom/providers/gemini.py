from coderoom.providers.base import PostJsonRequest


class GeminiClient:
    def generate(
        self,
        *,
        api_key: str,
        model: str,
        prompt: str,
        post_json_request: PostJsonRequest,
        system_prompt: str | None = None,
    ) -> str:
        url = f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
        payload: dict = {"contents": [{"parts": [{"text": prompt}]}]}
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        data = post_json_request(url, {"x-goog-api-key": api_key}, payload)
        candidates = data.get("candidates", [])
        if not isinstance(candidates, list) or not candidates:
            raise RuntimeError("Gemini returned no candidates.")
        first = candidates[0]
        if not isinstance(first, dict):
            raise RuntimeError("Gemini response format was invalid.")
        content = first.get("content", {})
        if not isinstance(content, dict):
            raise RuntimeError("Gemini response content missing.")
        parts = content.get("parts", [])
        if not isinstance(parts, list) or not parts:
            raise RuntimeError("Gemini returned empty content.")
        texts = [
            str(part.get("text", "")).strip()
            for part in parts
            if isinstance(part, dict)
        ]
        answer = "\n".join(text for text in texts if text)
        if not answer:
            raise RuntimeError("Gemini response did not contain text.")
        return answer
