from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

# -----------------------------
# Innings semantics
# -----------------------------
InningsStatus = Literal["pending", "open", "locked", "scored"]
TossDecision = Literal["bat", "field"]

INNINGS_STATUSES = ("pending", "open", "locked", "scored")
TOSS_DECISIONS = ("bat", "field")
INNINGS_KEYS = ("innings1", "innings2")


def innings_key(innings: int) -> str:
    return "innings2" if innings == 2 else "innings1"


# -----------------------------
# Instants
# -----------------------------
def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_instant(value: Any) -> Optional[datetime]:
    """
    Parse an instant from storage or a feed.

    Accepts aware/naive datetimes and ISO strings such as
      "2026-02-07T13:30:00.000Z"
      "2026-02-07 13:30:00Z"
    Naive values are taken as UTC. Anything unparsable -> None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if not s:
            return None
        if "T" not in s:
            s = s.replace(" ", "T", 1)
        if s.endswith("Z") or s.endswith("z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_instant(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def make_id(prefix: str) -> str:
    """Ids like match_lq2k3j9a_x81kfz (base36 millis + 6 random chars)."""
    millis = int(time.time() * 1000)
    alphabet = string.digits + string.ascii_lowercase
    stamp = ""
    while millis:
        millis, rem = divmod(millis, 36)
        stamp = alphabet[rem] + stamp
    suffix = "".join(random.choice(alphabet) for _ in range(6))
    return f"{prefix}_{stamp or '0'}_{suffix}"


# -----------------------------
# Canonical records
# -----------------------------
@dataclass(frozen=True)
class Player:
    id: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class Toss:
    winner: str
    decision: TossDecision

    def to_dict(self) -> Dict[str, Any]:
        return {"winner": self.winner, "decision": self.decision}


@dataclass
class Innings:
    status: InningsStatus = "open"
    lock_time: Optional[datetime] = None
    score: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "lockTime": format_instant(self.lock_time),
            "score": self.score,
        }


@dataclass
class InningsResult:
    winners: List[str] = field(default_factory=list)
    closest_diff: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"winners": list(self.winners), "closestDiff": self.closest_diff}


@dataclass
class Match:
    id: str
    team_a: str
    team_b: str

    external_id: Optional[str] = None
    goalserve_match_id: Optional[str] = None

    venue: Optional[str] = None
    group: Optional[str] = None
    stage: Optional[str] = None
    match_number: Optional[int] = None
    round_number: Optional[int] = None
    match_date: Optional[datetime] = None

    toss: Optional[Toss] = None
    innings1: Innings = field(default_factory=lambda: Innings(status="open"))
    innings2: Innings = field(default_factory=lambda: Innings(status="pending"))

    # innings key -> player id -> predicted score
    predictions: Dict[str, Dict[str, int]] = field(
        default_factory=lambda: {"innings1": {}, "innings2": {}}
    )
    # None until any innings has been scored
    result: Optional[Dict[str, Optional[InningsResult]]] = None

    def innings(self, number: int) -> Innings:
        return self.innings2 if number == 2 else self.innings1

    def to_dict(self) -> Dict[str, Any]:
        result = None
        if self.result is not None:
            result = {
                key: (self.result.get(key).to_dict() if self.result.get(key) else None)
                for key in INNINGS_KEYS
            }
        return {
            "id": self.id,
            "externalId": self.external_id,
            "goalserveMatchId": self.goalserve_match_id,
            "matchNumber": self.match_number,
            "roundNumber": self.round_number,
            "teamA": self.team_a,
            "teamB": self.team_b,
            "venue": self.venue,
            "group": self.group,
            "stage": self.stage,
            "matchDate": format_instant(self.match_date),
            "toss": self.toss.to_dict() if self.toss else None,
            "innings1": self.innings1.to_dict(),
            "innings2": self.innings2.to_dict(),
            "predictions": {key: dict(self.predictions.get(key, {})) for key in INNINGS_KEYS},
            "result": result,
        }


# -----------------------------
# Room
# -----------------------------
DEFAULT_ROOM_NAME = "T20 Score Predictions"


@dataclass
class RoomSettings:
    room_name: str = DEFAULT_ROOM_NAME
    use_pin: bool = False
    admin_pin_hash: Optional[str] = None
    bonus_exact: int = 0
    min_score: int = 60
    max_score: int = 300
    lock_minutes_before_start: int = 15
    schedule_source: str = "Fixture Download (ICC schedule)"
    last_schedule_sync: Optional[datetime] = None
    toss_auto_enabled: bool = True
    toss_auto_source: str = "Goalserve"
    last_toss_sync: Optional[datetime] = None

    def to_dict(self, *, include_secret: bool = True) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "roomName": self.room_name,
            "usePin": self.use_pin,
            "adminPinHash": self.admin_pin_hash,
            "bonusExact": self.bonus_exact,
            "minScore": self.min_score,
            "maxScore": self.max_score,
            "lockMinutesBeforeStart": self.lock_minutes_before_start,
            "scheduleSource": self.schedule_source,
            "lastScheduleSync": format_instant(self.last_schedule_sync),
            "tossAutoEnabled": self.toss_auto_enabled,
            "tossAutoSource": self.toss_auto_source,
            "lastTossSync": format_instant(self.last_toss_sync),
        }
        if not include_secret:
            out.pop("adminPinHash")
        return out

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "RoomSettings":
        """Stored settings merged over defaults; unusable values keep the default."""
        raw = raw if isinstance(raw, dict) else {}
        d = cls()

        def _int(key: str, default: int) -> int:
            try:
                return int(raw.get(key, default))
            except (TypeError, ValueError):
                return default

        return cls(
            room_name=str(raw.get("roomName") or d.room_name),
            use_pin=bool(raw.get("usePin", d.use_pin)),
            admin_pin_hash=raw.get("adminPinHash") or None,
            bonus_exact=_int("bonusExact", d.bonus_exact),
            min_score=_int("minScore", d.min_score),
            max_score=_int("maxScore", d.max_score),
            lock_minutes_before_start=_int("lockMinutesBeforeStart", d.lock_minutes_before_start),
            schedule_source=str(raw.get("scheduleSource") or d.schedule_source),
            last_schedule_sync=parse_instant(raw.get("lastScheduleSync")),
            toss_auto_enabled=bool(raw.get("tossAutoEnabled", d.toss_auto_enabled)),
            toss_auto_source=str(raw.get("tossAutoSource") or d.toss_auto_source),
            last_toss_sync=parse_instant(raw.get("lastTossSync")),
        )


@dataclass
class RoomState:
    settings: RoomSettings = field(default_factory=RoomSettings)
    players: List[Player] = field(default_factory=list)
    matches: List[Match] = field(default_factory=list)

    def find_match(self, match_id: str) -> Optional[Match]:
        for m in self.matches:
            if m.id == match_id:
                return m
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "settings": self.settings.to_dict(),
            "players": [p.to_dict() for p in self.players],
            "matches": [m.to_dict() for m in self.matches],
        }
