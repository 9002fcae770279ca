from imperium.services.llm.openai_compatible import OpenAICompatibleProvider


class ZAIProvider(OpenAICompatibleProvider):
    name = "zai"
