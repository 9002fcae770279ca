from imperium.services.llm.openai_compatible import OpenAICompatibleProvider

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


class OpenRouterProvider(OpenAICompatibleProvider):
    name = "openrouter"

    def __init__(self, api_key, default_model, referer: str = "", title: str = "Imperium Console", **kwargs):
        super().__init__(api_key, kwargs.pop("url", OPENROUTER_URL), default_model, **kwargs)
        self.referer = referer
        self.title = title

    def extra_headers(self) -> dict:
        headers = {"X-Title": self.title}
        if self.referer:
            headers["HTTP-Referer"] = self.referer
        return headers
