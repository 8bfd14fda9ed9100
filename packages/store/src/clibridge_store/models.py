"""Session record data models.

Decoupled from clibridge_core so the store layer can be used independently
and clibridge_core has no knowledge of persistence concerns. The CLI maps
core results (comment dicts, GitState, BackendResult) onto these records.

Every record round-trips through ``to_dict`` / ``from_dict``; ``from_dict``
raises KeyError, TypeError or ValueError on malformed input, including
nested entries that are not objects, which the file store treats as a
corrupt session.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Optional

SEVERITIES = ("critical", "important", "suggestion", "question")
STATUSES = ("pending", "accepted", "rejected", "modified", "deferred")
IDEA_STATUSES = ("active", "refined", "merged", "discarded")

_DECISION_VERBS = {
    "accept": "accepted",
    "reject": "rejected",
    "modify": "modified",
    "defer": "deferred",
}

# Characters of each earlier response carried into follow-up prompts.
CONTEXT_RESPONSE_CHARS = 500
MAX_HISTORY_ROUNDS = 3


def normalize_decision(decision: str) -> Optional[str]:
    """Map ``accept``/``accepted`` etc. to a comment status, or None if unknown."""
    decision = decision.strip().lower()
    if decision in _DECISION_VERBS:
        return _DECISION_VERBS[decision]
    if decision in STATUSES and decision != "pending":
        return decision
    return None


def _object(value, what: str) -> dict:
    if not isinstance(value, dict):
        raise TypeError(f"{what} must be an object, got {type(value).__name__}")
    return value


@dataclass
class SessionRecord:
    """Fields every persisted session carries.

    ``created_at`` is set once, on first save. ``last_accessed_at`` is bumped
    by the store on every load and save.
    """

    session_id: str
    created_at: float = 0.0
    last_accessed_at: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> SessionRecord:
        d = _object(d, "session record")
        return cls(
            session_id=d["session_id"],
            created_at=float(d.get("created_at", 0.0)),
            last_accessed_at=float(d.get("last_accessed_at", 0.0)),
        )


@dataclass
class CacheEntry:
    """On-disk envelope around a session record."""

    data: dict
    timestamp: float
    expiry_time: float

    def is_expired(self, now: float) -> bool:
        return now > self.expiry_time

    def to_dict(self) -> dict:
        return {"data": self.data, "timestamp": self.timestamp, "expiry_time": self.expiry_time}

    @classmethod
    def from_dict(cls, d: dict) -> CacheEntry:
        if not isinstance(d.get("data"), dict):
            raise TypeError("cache entry has no data object")
        return cls(data=d["data"], timestamp=float(d["timestamp"]), expiry_time=float(d["expiry_time"]))


# ---------------------------------------------------------------------------
# ask
# ---------------------------------------------------------------------------


@dataclass
class ConversationRound:
    round_number: int
    timestamp: float
    prompt: str
    response: str
    model: str
    provider: str


@dataclass
class AskSession(SessionRecord):
    rounds: list[ConversationRound] = field(default_factory=list)
    context_files: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    thread_id: Optional[str] = None
    last_provider: Optional[str] = None

    @property
    def total_rounds(self) -> int:
        return len(self.rounds)

    def add_round(
        self,
        prompt: str,
        response: str,
        model: str,
        provider: str,
        context_files: Optional[list[str]] = None,
        thread_id: Optional[str] = None,
    ) -> ConversationRound:
        entry = ConversationRound(
            round_number=self.total_rounds + 1,
            timestamp=time.time(),
            prompt=prompt,
            response=response,
            model=model,
            provider=provider,
        )
        self.rounds.append(entry)
        for path in context_files or []:
            if path not in self.context_files:
                self.context_files.append(path)
        if thread_id:
            self.thread_id = thread_id
        self.last_provider = provider
        return entry

    def build_conversation_context(self, max_rounds: int = MAX_HISTORY_ROUNDS) -> str:
        """Recent rounds, formatted for prepending to the next prompt."""
        if not self.rounds:
            return ""
        parts = []
        for r in self.rounds[-max_rounds:]:
            response = r.response
            if len(response) > CONTEXT_RESPONSE_CHARS:
                response = response[:CONTEXT_RESPONSE_CHARS] + "..."
            parts.append(f"[Round {r.round_number}]\nUser: {r.prompt}\n{r.provider.capitalize()}: {response}")
        return "# Conversation History\n\n" + "\n\n".join(parts)

    @classmethod
    def from_dict(cls, d: dict) -> AskSession:
        d = _object(d, "session record")
        return cls(
            session_id=d["session_id"],
            created_at=float(d.get("created_at", 0.0)),
            last_accessed_at=float(d.get("last_accessed_at", 0.0)),
            rounds=[ConversationRound(**_object(r, "round")) for r in d.get("rounds", [])],
            context_files=list(d.get("context_files", [])),
            metadata=dict(d.get("metadata", {})),
            thread_id=d.get("thread_id"),
            last_provider=d.get("last_provider"),
        )


# ---------------------------------------------------------------------------
# brainstorm
# ---------------------------------------------------------------------------


@dataclass
class Idea:
    idea_id: str
    name: str
    description: str
    feasibility: Optional[int] = None
    impact: Optional[int] = None
    innovation: Optional[int] = None
    status: str = "active"


@dataclass
class BrainstormRound:
    round_number: int
    timestamp: float
    prompt: str
    response: str
    model: str
    provider: str
    ideas: list[Idea] = field(default_factory=list)


@dataclass
class Refinement:
    timestamp: float
    action: str
    idea_ids: list[str]
    reason: Optional[str] = None


@dataclass
class BrainstormSession(SessionRecord):
    challenge: str = ""
    methodology: str = "auto"
    domain: Optional[str] = None
    constraints: Optional[str] = None
    rounds: list[BrainstormRound] = field(default_factory=list)
    total_ideas: int = 0
    active_ideas: int = 0
    refinement_history: list[Refinement] = field(default_factory=list)
    thread_id: Optional[str] = None
    last_provider: Optional[str] = None

    def add_round(
        self,
        prompt: str,
        response: str,
        ideas: list[dict],
        model: str,
        provider: str,
        thread_id: Optional[str] = None,
    ) -> BrainstormRound:
        new_ideas = [
            Idea(
                idea_id=f"idea-{uuid.uuid4()}",
                name=i["name"],
                description=i["description"],
                feasibility=i.get("feasibility"),
                impact=i.get("impact"),
                innovation=i.get("innovation"),
            )
            for i in ideas
        ]
        entry = BrainstormRound(
            round_number=len(self.rounds) + 1,
            timestamp=time.time(),
            prompt=prompt,
            response=response,
            model=model,
            provider=provider,
            ideas=new_ideas,
        )
        self.rounds.append(entry)
        self.total_ideas += len(new_ideas)
        self.active_ideas += len(new_ideas)
        if thread_id:
            self.thread_id = thread_id
        self.last_provider = provider
        return entry

    def all_ideas(self) -> list[Idea]:
        return [idea for r in self.rounds for idea in r.ideas]

    def refine_ideas(self, action: str, idea_ids: list[str], reason: Optional[str] = None) -> int:
        """Mark ideas as refined, merged or discarded. Returns how many changed.

        Merged and discarded ideas stop counting as active; refined ones stay.
        """
        if action not in IDEA_STATUSES or action == "active":
            raise ValueError(f"Unknown refinement action: {action}")
        self.refinement_history.append(Refinement(timestamp=time.time(), action=action, idea_ids=list(idea_ids), reason=reason))

        changed = 0
        wanted = set(idea_ids)
        for idea in self.all_ideas():
            if idea.idea_id not in wanted or idea.status == action:
                continue
            was_active = idea.status in ("active", "refined")
            idea.status = action
            if was_active and action in ("merged", "discarded"):
                self.active_ideas -= 1
            changed += 1
        return changed

    def build_ideas_context(self, active_only: bool = True) -> str:
        ideas = self.all_ideas()
        if active_only:
            ideas = [i for i in ideas if i.status in ("active", "refined")]
        if not ideas:
            return ""
        lines = []
        for idea in ideas:
            line = f"- **{idea.name}**: {idea.description}"
            if idea.status != "active":
                line += f" [{idea.status.upper()}]"
            scores = [
                f"{label}: {value}/10"
                for label, value in (("Feasibility", idea.feasibility), ("Impact", idea.impact), ("Innovation", idea.innovation))
                if value
            ]
            if scores:
                line += f" ({', '.join(scores)})"
            lines.append(line)
        return "# Previously Generated Ideas\n\n" + "\n".join(lines)

    @classmethod
    def from_dict(cls, d: dict) -> BrainstormSession:
        d = _object(d, "session record")
        return cls(
            session_id=d["session_id"],
            created_at=float(d.get("created_at", 0.0)),
            last_accessed_at=float(d.get("last_accessed_at", 0.0)),
            challenge=d.get("challenge", ""),
            methodology=d.get("methodology", "auto"),
            domain=d.get("domain"),
            constraints=d.get("constraints"),
            rounds=[
                BrainstormRound(
                    **{**_object(r, "round"), "ideas": [Idea(**_object(i, "idea")) for i in r.get("ideas", [])]}
                )
                for r in d.get("rounds", [])
            ],
            total_ideas=int(d.get("total_ideas", 0)),
            active_ideas=int(d.get("active_ideas", 0)),
            refinement_history=[Refinement(**_object(x, "refinement")) for x in d.get("refinement_history", [])],
            thread_id=d.get("thread_id"),
            last_provider=d.get("last_provider"),
        )


# ---------------------------------------------------------------------------
# review
# ---------------------------------------------------------------------------


@dataclass
class GitSnapshot:
    branch: str
    commit_hash: str
    working_tree_clean: bool
    timestamp: float


@dataclass
class ReviewComment:
    id: str
    file_pattern: str
    severity: str
    comment: str
    round_generated: int
    line_range: Optional[tuple[int, int]] = None
    status: str = "pending"
    resolution: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict) -> ReviewComment:
        d = _object(d, "comment")
        line_range = d.get("line_range")
        return cls(
            id=d["id"],
            file_pattern=d["file_pattern"],
            severity=d["severity"],
            comment=d["comment"],
            round_generated=int(d["round_generated"]),
            line_range=(int(line_range[0]), int(line_range[1])) if line_range else None,
            status=d.get("status", "pending"),
            resolution=d.get("resolution"),
        )


@dataclass
class ReviewRound:
    round_number: int
    timestamp: float
    files_reviewed: list[str]
    prompt: str
    response: str
    model: str
    provider: str
    git_state: GitSnapshot
    comment_ids: list[str] = field(default_factory=list)


@dataclass
class ReviewSession(SessionRecord):
    git_state: Optional[GitSnapshot] = None
    current_git_state: Optional[GitSnapshot] = None
    rounds: list[ReviewRound] = field(default_factory=list)
    all_comments: list[ReviewComment] = field(default_factory=list)
    files_tracked: list[str] = field(default_factory=list)
    focus_files: Optional[list[str]] = None
    review_scope: str = "full"
    session_state: str = "active"
    thread_id: Optional[str] = None
    last_provider: Optional[str] = None

    @property
    def total_rounds(self) -> int:
        return len(self.rounds)

    def round_comments(self, review_round: ReviewRound) -> list[ReviewComment]:
        wanted = set(review_round.comment_ids)
        return [c for c in self.all_comments if c.id in wanted]

    def track_files(self, files: list[str]) -> None:
        for path in files:
            if path not in self.files_tracked:
                self.files_tracked.append(path)

    def add_round(
        self,
        prompt: str,
        response: str,
        model: str,
        provider: str,
        git_state: GitSnapshot,
        files_reviewed: list[str],
        comments: list[ReviewComment],
        thread_id: Optional[str] = None,
    ) -> ReviewRound:
        entry = ReviewRound(
            round_number=self.total_rounds + 1,
            timestamp=time.time(),
            files_reviewed=list(files_reviewed),
            prompt=prompt,
            response=response,
            model=model,
            provider=provider,
            git_state=git_state,
            comment_ids=[c.id for c in comments],
        )
        self.rounds.append(entry)
        self.all_comments.extend(comments)
        self.current_git_state = git_state
        if thread_id:
            self.thread_id = thread_id
        self.last_provider = provider
        return entry

    def apply_comment_decisions(self, decisions: list[dict]) -> int:
        """Apply ``{comment_id, decision, notes?}`` entries. Returns how many applied.

        Unknown comment ids and unknown decisions are skipped.
        """
        by_id = {c.id: c for c in self.all_comments}
        applied = 0
        for d in decisions:
            comment = by_id.get(d.get("comment_id", ""))
            status = normalize_decision(d.get("decision", ""))
            if comment is None or status is None:
                continue
            comment.status = status
            if d.get("notes"):
                comment.resolution = d["notes"]
            applied += 1
        return applied

    def format_previous_rounds(self, max_rounds: int = MAX_HISTORY_ROUNDS) -> str:
        """Summary of recent rounds for the next review prompt."""
        if not self.rounds:
            return ""
        text = "\n## Previous Review Rounds\n"
        for r in self.rounds[-max_rounds:]:
            comments = self.round_comments(r)
            stamp = time.strftime("%Y-%m-%d %H:%M", time.localtime(r.timestamp))
            text += f"\n### Round {r.round_number} ({stamp})\n"
            text += f"**User Request:** {r.prompt}\n"
            text += f"**Issues Found:** {len(comments)}\n"

            resolved = [c for c in comments if c.status != "pending"]
            if resolved:
                text += "\n**Resolved Issues:**\n"
                for c in resolved:
                    text += f"- [{c.status.upper()}] {c.file_pattern}: {c.comment.splitlines()[0] if c.comment else ''}"
                    if c.resolution:
                        text += f" - {c.resolution}"
                    text += "\n"

            pending = [c for c in comments if c.status == "pending" and c.severity in ("critical", "important")]
            if pending:
                text += "\n**Still Pending (Critical/Important):**\n"
                for c in pending:
                    text += f"- [{c.severity.upper()}] {c.file_pattern}: {c.comment.splitlines()[0] if c.comment else ''}\n"

        text += f"\n**Total Issues Across All Rounds:** {len(self.all_comments)}\n"
        text += f"**Files Reviewed:** {len(self.files_tracked)}\n\n"
        return text

    @classmethod
    def from_dict(cls, d: dict) -> ReviewSession:
        d = _object(d, "session record")

        def snapshot(s: Optional[dict]) -> Optional[GitSnapshot]:
            return GitSnapshot(**_object(s, "git state")) if s else None

        return cls(
            session_id=d["session_id"],
            created_at=float(d.get("created_at", 0.0)),
            last_accessed_at=float(d.get("last_accessed_at", 0.0)),
            git_state=snapshot(d.get("git_state")),
            current_git_state=snapshot(d.get("current_git_state")),
            rounds=[
                ReviewRound(**{**_object(r, "round"), "git_state": GitSnapshot(**_object(r["git_state"], "git state"))})
                for r in d.get("rounds", [])
            ],
            all_comments=[ReviewComment.from_dict(c) for c in d.get("all_comments", [])],
            files_tracked=list(d.get("files_tracked", [])),
            focus_files=d.get("focus_files"),
            review_scope=d.get("review_scope", "full"),
            session_state=d.get("session_state", "active"),
            thread_id=d.get("thread_id"),
            last_provider=d.get("last_provider"),
        )
