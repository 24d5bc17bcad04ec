from groq import Groq

from core.config import settings
from core.logger import get_logger

logger = get_logger("ai_coach")

FALLBACK_REPLY = "Sorry, I ran into a technical problem. Could you rephrase that?"


class AICoach:
    def __init__(self, api_key=None, model=None, client=None):
        self.api_key = api_key or settings.GROQ_API_KEY
        self.model = model or settings.GROQ_MODEL
        self._client = client

    @property
    def client(self):
        # created on first use so the app starts without an API key
        if self._client is None:
            self._client = Groq(api_key=self.api_key)
        return self._client

    def get_financial_advice(self, messages, temperature=0.7, max_tokens=500):
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
            return completion.choices[0].message.content
        except Exception as e:
            logger.error("Groq API error: %s", e)
            return FALLBACK_REPLY
