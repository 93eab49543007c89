from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple


@dataclass(frozen=True)
class ModerationSettings:
    """Snapshot of the automod configuration"""

    invite_auto_delete: bool = True
    invite_warn: bool = True
    invite_warn_delete_seconds: float = 12

    low_trust_filter_enabled: bool = True
    low_trust_min_account_age_days: float = 7
    low_trust_warn_dm: bool = True

    spam_enabled: bool = True
    flood_window_seconds: float = 8
    flood_max_messages: int = 5
    repeat_window_seconds: float = 30
    repeat_max_repeats: int = 3
    spam_warn_enabled: bool = True
    spam_warn_delete_seconds: float = 12
    spam_timeout_enabled: bool = True
    spam_timeout_minutes: float = 10
    strike_decay_minutes: float = 30

    ignored_channel_ids: FrozenSet[int] = frozenset()
    bypass_role_ids: FrozenSet[int] = frozenset()

    roll_cooldown_user_ms: int = 3000
    roll_cooldown_channel_ms: int = 1000

    @property
    def flood_window_ms(self) -> int:
        return int(self.flood_window_seconds * 1000)

    @property
    def repeat_window_ms(self) -> int:
        return int(self.repeat_window_seconds * 1000)

    @property
    def strike_decay_ms(self) -> int:
        return int(self.strike_decay_minutes * 60_000)


@dataclass(frozen=True)
class BotConfig:
    """Process-level configuration read from the environment"""

    guild_id: int
    moderator_role_id: Optional[int] = None


@dataclass(frozen=True)
class InboundMessage:
    """A chat message as seen by the automod pipeline"""

    author_id: int
    author_is_bot: bool
    author_created_at: int
    author_has_mod_permission: bool
    author_role_ids: FrozenSet[int]
    community_id: Optional[int]
    channel_id: int
    message_id: int
    text: str
    timestamp: int
    community_name: str = "this server"


class ActionErrorKind(str, Enum):
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a single platform call"""

    ok: bool
    error_kind: Optional[ActionErrorKind] = None
    detail: str = ""

    @classmethod
    def success(cls) -> "ActionResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, kind: ActionErrorKind, detail: str) -> "ActionResult":
        return cls(ok=False, error_kind=kind, detail=detail)


class Verdict(str, Enum):
    ALLOWED = "allowed"
    ENFORCED = "enforced"


class Rule(str, Enum):
    INVITE = "invite"
    LOW_TRUST = "low_trust"
    SPAM = "spam"


@dataclass(frozen=True)
class ModerationOutcome:
    """Result of running one message through the pipeline"""

    verdict: Verdict
    rule: Optional[Rule] = None
    reason: str = ""
    actions: Tuple[str, ...] = ()

    @classmethod
    def allowed(cls, reason: str = "") -> "ModerationOutcome":
        return cls(verdict=Verdict.ALLOWED, reason=reason)

    @classmethod
    def enforced(cls, rule: Rule, reason: str, actions: List[str]) -> "ModerationOutcome":
        return cls(verdict=Verdict.ENFORCED, rule=rule, reason=reason, actions=tuple(actions))


@dataclass
class RepeatState:
    """Last normalised message of a user"""

    normalized_text: str
    last_timestamp: int
    consecutive_repeats: int


@dataclass
class StrikeState:
    """Decaying spam violation counter of a user"""

    count: int
    last_timestamp: int


@dataclass
class ActivityWindow:
    """Recent message timestamps of a user, oldest first"""

    timestamps: List[int] = field(default_factory=list)

