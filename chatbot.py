"""Storefront chatbot: canned replies for known intents, LLM fallback for the rest."""
import logging
import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass

import google.generativeai as genai

import config
from errors import RemoteCallError

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, I couldn't understand that."
OFFLINE_REPLY = ("I can help with bookings, prices, contact details and our location. "
                 "For anything else please call us at +91 95660 61075.")


@dataclass(frozen=True)
class Intent:
    tag: str
    keywords: tuple
    reply: str

    def matches(self, text):
        return any(keyword in text for keyword in self.keywords)


QUICK_REPLIES = (
    Intent('greeting', ('hello',), '👋 Hi there! How can I help you today?'),
    Intent('booking', ('book stall',), 'Sure! Please share your name, event type, and stall type.'),
    Intent('pricing', ('price',),
           '💰 Our pricing depends on your event and stall size. Would you like our package details?'),
    Intent('contact', ('contact',),
           '📞 You can reach us at +91 95660 61075 or email klstall.decors@gmail.com.'),
    Intent('location', ('location',), "📍 We're based in Thirukkazhukundram, Tamil Nadu."),
)


@dataclass(frozen=True)
class ChatReply:
    text: str
    source: str

    def as_dict(self):
        return {'reply': self.text, 'source': self.source}


class CompletionProvider:
    """Anything that can continue a conversation given ``[(role, text), ...]``."""

    def complete(self, history):
        raise NotImplementedError


class GeminiProvider(CompletionProvider):
    def __init__(self, api_key, model_name=None):
        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model_name or config.GEMINI_MODEL)

    def complete(self, history):
        contents = [
            {'role': 'model' if role == 'assistant' else 'user', 'parts': [text]}
            for role, text in history
        ]
        try:
            response = self.model.generate_content(contents)
            return (getattr(response, 'text', '') or '').strip()
        except Exception as e:
            # the SDK raises google.api_core errors and plain ValueError for blocked candidates
            logger.exception('Gemini completion failed')
            raise RemoteCallError(f'Chatbot failed to respond: {e}')


def default_provider():
    if not config.GEMINI_API_KEY:
        logger.warning('GEMINI_API_KEY not set; chatbot will answer quick replies only.')
        return None
    return GeminiProvider(config.GEMINI_API_KEY, config.GEMINI_MODEL)


class ChatBot:
    """Replies to storefront chat messages.

    At most ``max_conversations`` histories are kept; the least recently used
    one is dropped first, and any history idle for ``idle_ttl`` seconds is
    forgotten.
    """

    def __init__(self, provider=None, intents=QUICK_REPLIES, max_history=20,
                 max_conversations=1000, idle_ttl=3600, clock=time.monotonic):
        self.provider = provider
        self.intents = tuple(intents)
        self.max_history = max_history
        self.max_conversations = max_conversations
        self.idle_ttl = idle_ttl
        self.clock = clock
        self._conversations = OrderedDict()
        self._lock = threading.Lock()

    def match(self, message):
        text = message.lower()
        for intent in self.intents:
            if intent.matches(text):
                return intent
        return None

    def _expire(self, now):
        while self._conversations:
            oldest_id, (last_seen, _) = next(iter(self._conversations.items()))
            if now - last_seen < self.idle_ttl:
                break
            del self._conversations[oldest_id]

    def history(self, conversation_id):
        with self._lock:
            self._expire(self.clock())
            entry = self._conversations.get(conversation_id)
            return list(entry[1]) if entry else []

    def _remember(self, conversation_id, role, text):
        with self._lock:
            now = self.clock()
            self._expire(now)
            entry = self._conversations.pop(conversation_id, None)
            turns = entry[1] if entry else deque(maxlen=self.max_history)
            turns.append((role, text))
            self._conversations[conversation_id] = (now, turns)
            while len(self._conversations) > self.max_conversations:
                self._conversations.popitem(last=False)

    def reply(self, message, conversation_id='default'):
        if message is not None and not isinstance(message, str):
            raise ValueError('Message must be text')
        message = (message or '').strip()
        if not message:
            raise ValueError('No message provided')

        intent = self.match(message)
        if intent:
            self._remember(conversation_id, 'assistant', intent.reply)
            return ChatReply(intent.reply, f'intent:{intent.tag}')

        if self.provider is None:
            return ChatReply(OFFLINE_REPLY, 'fallback')

        self._remember(conversation_id, 'user', message)
        text = self.provider.complete(self.history(conversation_id)) or FALLBACK_REPLY
        self._remember(conversation_id, 'assistant', text)
        return ChatReply(text, 'llm')
