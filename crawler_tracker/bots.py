"""
User-agent bot detection.

``is_bot`` answers "is this automated traffic?" from a broad keyword set,
while ``classify`` names the crawler from an ordered rule list. The keyword
set is wider than the rule list, so a user-agent can be a bot without a
label. Dashboards count with ``is_bot`` and display ``classify``.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class BotRule:
    """A labelled crawler: matches when any pattern occurs in the user-agent."""

    label: str
    patterns: Tuple[str, ...]
    category: str

    def matches(self, lowered_ua: str) -> bool:
        return any(pattern in lowered_ua for pattern in self.patterns)


BOT_KEYWORDS: Tuple[str, ...] = (
    # generic
    "bot",
    "spider",
    "crawl",
    # AI
    "gpt",
    "perplexity",
    "anthropic",
    "claude",
    "cohere",
    # search
    "bytespider",
    "bingpreview",
    "baiduspider",
    "duckduckbot",
    "sogou",
    "seznambot",
    "yandex",
    "slurp",
    "googlebot",
    # SEO
    "mj12",
    "ahrefs",
    "semrush",
    # social previews
    "facebookexternalhit",
    "twitterbot",
    "whatsapp",
    "telegram",
    # feeds
    "feedfetcher",
    # ad verification
    "mediapartners-google",
    "adsbot",
)

# Order is significant: first match wins.
GENERIC_RULES: Tuple[BotRule, ...] = (
    BotRule("Generic Bot", ("bot",), "generic"),
    BotRule("Web Spider", ("spider",), "generic"),
    BotRule("Web Crawler", ("crawl",), "generic"),
)

DEFAULT_RULES: Tuple[BotRule, ...] = (
    # AI
    BotRule("GPTBot (OpenAI)", ("gptbot",), "ai"),
    BotRule("ChatGPT-User", ("chatgpt",), "ai"),
    BotRule("OAI-SearchBot (OpenAI)", ("oai-searchbot",), "ai"),
    BotRule("Claude (Anthropic)", ("claude",), "ai"),
    BotRule("Anthropic", ("anthropic",), "ai"),
    BotRule("Perplexity", ("perplexity",), "ai"),
    BotRule("Cohere", ("cohere",), "ai"),
    # Google products, ahead of plain Googlebot
    BotRule("Google-Extended", ("google-extended",), "ai"),
    BotRule("Googlebot-Image", ("googlebot-image",), "search"),
    BotRule("AdsBot-Google", ("adsbot-google",), "ads"),
    BotRule("Mediapartners-Google", ("mediapartners-google",), "ads"),
    # search engines
    BotRule("Googlebot", ("googlebot",), "search"),
    BotRule("Bingbot", ("bingbot", "bingpreview"), "search"),
    BotRule("YandexBot", ("yandex",), "search"),
    BotRule("DuckDuckBot", ("duckduckbot",), "search"),
    BotRule("Baiduspider", ("baiduspider",), "search"),
    # social
    BotRule("Facebook Bot", ("facebookexternalhit",), "social"),
    BotRule("Twitter Bot", ("twitterbot",), "social"),
    BotRule("LinkedIn Bot", ("linkedinbot",), "social"),
    # SEO
    BotRule("AhrefsBot", ("ahrefs",), "seo"),
    BotRule("SemrushBot", ("semrush",), "seo"),
    BotRule("MJ12bot", ("mj12bot",), "seo"),
    BotRule("ByteSpider (TikTok)", ("bytespider",), "ai"),
) + GENERIC_RULES


class BotClassifier:
    """Keyword detection plus an ordered, extendable list of labelling rules."""

    def __init__(
        self,
        rules: Iterable[BotRule] = DEFAULT_RULES,
        keywords: Iterable[str] = BOT_KEYWORDS,
    ) -> None:
        self._rules: List[BotRule] = list(rules)
        self._keywords = tuple(keyword.lower() for keyword in keywords)

    @property
    def rules(self) -> Tuple[BotRule, ...]:
        return tuple(self._rules)

    def add_rule(self, rule: BotRule, before_generic: bool = True) -> None:
        """Register a vendor rule.

        By default the rule is placed ahead of the generic fallbacks so it
        can win over "Generic Bot"; pass ``before_generic=False`` to append
        it at the very end instead.
        """
        if before_generic:
            for index, existing in enumerate(self._rules):
                if existing in GENERIC_RULES:
                    self._rules.insert(index, rule)
                    return
        self._rules.append(rule)

    def is_bot(self, user_agent: Optional[str]) -> bool:
        if not user_agent:
            return False
        lowered = user_agent.lower()
        return any(keyword in lowered for keyword in self._keywords)

    def match(self, user_agent: Optional[str]) -> Optional[BotRule]:
        if not user_agent:
            return None
        lowered = user_agent.lower()
        for rule in self._rules:
            if rule.matches(lowered):
                return rule
        return None

    def classify(self, user_agent: Optional[str]) -> Optional[str]:
        rule = self.match(user_agent)
        return rule.label if rule else None


default_classifier = BotClassifier()


def is_bot(user_agent: Optional[str]) -> bool:
    return default_classifier.is_bot(user_agent)


def classify(user_agent: Optional[str]) -> Optional[str]:
    return default_classifier.classify(user_agent)
