import re

_URL = re.compile(r"https?://\S+")
_USER_MENTION = re.compile(r"<@!?\d+>")
_CHANNEL_MENTION = re.compile(r"<#\d+>")
_ROLE_MENTION = re.compile(r"<@&\d+>")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Canonicalise message text for repeat comparison.

    Links are dropped so that repeated links only count towards flooding, and
    mentions collapse to placeholders so changing the target does not break a
    streak. Placeholders lose their sigil with the rest of the punctuation.
    """
    text = (text or "").lower()
    text = _URL.sub(" ", text)
    text = _USER_MENTION.sub("@user", text)
    text = _CHANNEL_MENTION.sub("#channel", text)
    text = _ROLE_MENTION.sub("@role", text)
    text = _NON_ALNUM.sub("", text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()
